"""
In-memory stand-in for the Supabase client.

Implements the parts of the postgrest query builder, the RPC functions and
the auth API that the services use. Several clients can share one store,
each acting as a different user the way per-request user clients do.
"""

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

from postgrest.exceptions import APIError


def api_error(code: str, message: str) -> APIError:
    return APIError({"code": code, "message": message, "hint": None, "details": None})


def recursion_error() -> APIError:
    return api_error("42P17", 'infinite recursion detected in policy for relation "family_members"')


def unique_violation(constraint: str = "families_name_created_by_key") -> APIError:
    return api_error("23505", f'duplicate key value violates unique constraint "{constraint}"')


def missing_function(name: str) -> APIError:
    return api_error(
        "PGRST202",
        f"Could not find the function public.{name} without parameters in the schema cache",
    )


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


UNIQUE_KEYS = {
    "family_members": [("family_id", "user_id")],
    "invitations": [("family_id", "email")],
    "email_preferences": [("family_id",)],
    "event_families": [("event_id", "family_id")],
}

DEFAULTS: Dict[str, Callable[[], Dict[str, Any]]] = {
    "families": lambda: {"color": "#8B5CF6", "created_at": _now()},
    "family_members": lambda: {"role": "member", "joined_at": _now()},
    "invitations": lambda: {"status": "pending", "invited_at": _now(), "last_invited": _now()},
    "events": lambda: {"all_day": False, "description": "", "created_at": _now()},
    "event_families": lambda: {"shared_at": _now()},
    "notifications": lambda: {"read": False, "type": "info", "metadata": {}, "created_at": _now()},
    "profiles": lambda: {"created_at": _now(), "updated_at": _now()},
    "email_preferences": lambda: {
        "reminder_enabled": True,
        "reminder_days_threshold": 1,
        "summary_frequency": "weekly",
        "summary_months_ahead": 1,
        "updated_at": _now(),
    },
}


class Failure:
    def __init__(self, error: Exception, times: Optional[int] = None, ops: Optional[set] = None):
        self.error = error
        self.times = times
        self.ops = ops

    def trigger(self, op: Optional[str] = None) -> Optional[Exception]:
        if self.ops is not None and op not in self.ops:
            return None
        if self.times is not None:
            if self.times <= 0:
                return None
            self.times -= 1
        return self.error


class Store:
    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.rpc_failures: Dict[str, Failure] = {}
        self.table_failures: Dict[str, Failure] = {}
        self.dropped_functions: set = set()
        self.calls: List[str] = []
        self.auth = FakeAuth(self)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def check_unique(self, table: str, row: Dict[str, Any], ignore: Optional[Dict[str, Any]] = None):
        for existing in self.rows(table):
            if existing is ignore:
                continue
            if existing.get("id") == row.get("id"):
                raise unique_violation(f"{table}_pkey")
            for key in UNIQUE_KEYS.get(table, []):
                if all(existing.get(col) == row.get(col) for col in key):
                    raise unique_violation(f"{table}_{'_'.join(key)}_key")

    def insert_row(self, table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        row = DEFAULTS.get(table, dict)()
        row["id"] = str(uuid.uuid4())
        row.update(values)
        self.check_unique(table, row)
        self.rows(table).append(row)
        return row


class FakeQuery:
    def __init__(self, store: Store, table: str):
        self.store = store
        self.table = table
        self.op = None
        self.payload = None
        self.columns = "*"
        self.on_conflict = None
        self.filters: List[Callable[[Dict[str, Any]], bool]] = []
        self.orders: List[tuple] = []
        self._limit = None
        self._offset = 0

    # Operations

    def select(self, columns: str = "*", **kwargs):
        self.op = self.op or "select"
        self.columns = columns
        return self

    def insert(self, payload, **kwargs):
        self.op, self.payload = "insert", payload
        return self

    def upsert(self, payload, on_conflict: str = "id", **kwargs):
        self.op, self.payload, self.on_conflict = "upsert", payload, on_conflict
        return self

    def update(self, payload, **kwargs):
        self.op, self.payload = "update", payload
        return self

    def delete(self, **kwargs):
        self.op = "delete"
        return self

    # Filters

    def eq(self, column: str, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column: str, value):
        self.filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column: str, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def gte(self, column: str, value):
        self.filters.append(lambda row: row.get(column) is not None and row.get(column) >= value)
        return self

    def lte(self, column: str, value):
        self.filters.append(lambda row: row.get(column) is not None and row.get(column) <= value)
        return self

    def or_(self, expression: str):
        conditions = [self._parse_condition(part) for part in _split_top_level(expression)]
        self.filters.append(lambda row: any(condition(row) for condition in conditions))
        return self

    @staticmethod
    def _parse_condition(text: str) -> Callable[[Dict[str, Any]], bool]:
        column, op, value = text.split(".", 2)
        if op == "eq":
            return lambda row: str(row.get(column)) == value
        if op == "in":
            values = [v.strip() for v in value.strip("()").split(",") if v.strip()]
            return lambda row: str(row.get(column)) in values
        if op == "gte":
            return lambda row: row.get(column) is not None and str(row.get(column)) >= value
        raise ValueError(f"Unsupported or_ operator: {op}")

    # Modifiers

    def order(self, column: str, desc: bool = False, **kwargs):
        self.orders.append((column, desc))
        return self

    def limit(self, count: int, **kwargs):
        self._limit = count
        return self

    def offset(self, count: int):
        self._offset = count
        return self

    # Execution

    def _matches(self, row: Dict[str, Any]) -> bool:
        return all(check(row) for check in self.filters)

    def _project(self, row: Dict[str, Any]) -> Dict[str, Any]:
        if self.columns.strip() == "*":
            return dict(row)
        return {col.strip(): row.get(col.strip()) for col in self.columns.split(",")}

    def _upsert_row(self, values: Dict[str, Any]) -> Dict[str, Any]:
        keys = [key.strip() for key in self.on_conflict.split(",")]
        for existing in self.store.rows(self.table):
            if all(existing.get(key) == values.get(key) for key in keys):
                existing.update(values)
                return existing
        return self.store.insert_row(self.table, values)

    def execute(self):
        op = self.op or "select"
        self.store.calls.append(f"table:{self.table}:{op}")
        failure = self.store.table_failures.get(self.table)
        if failure:
            error = failure.trigger(op)
            if error:
                raise error

        rows = self.store.rows(self.table)
        if op in ("insert", "upsert"):
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            if op == "insert":
                # All-or-nothing like a single INSERT statement
                for values in payload:
                    self.store.check_unique(self.table, {**values, "id": values.get("id")})
                result = [self.store.insert_row(self.table, dict(values)) for values in payload]
            else:
                result = [self._upsert_row(dict(values)) for values in payload]
            return SimpleNamespace(data=[dict(row) for row in result], count=None)

        matched = [row for row in rows if self._matches(row)]
        if op == "update":
            for row in matched:
                updated = {**row, **self.payload}
                self.store.check_unique(self.table, updated, ignore=row)
                row.update(self.payload)
            return SimpleNamespace(data=[dict(row) for row in matched], count=None)
        if op == "delete":
            self.store.tables[self.table] = [row for row in rows if not self._matches(row)]
            return SimpleNamespace(data=[dict(row) for row in matched], count=None)

        for column, desc in reversed(self.orders):
            matched.sort(key=lambda row: (row.get(column) is None, row.get(column) or ""), reverse=desc)
        matched = matched[self._offset:]
        if self._limit is not None:
            matched = matched[:self._limit]
        return SimpleNamespace(data=[self._project(row) for row in matched], count=len(matched))


def _split_top_level(expression: str) -> List[str]:
    parts, depth, current = [], 0, ""
    for char in expression:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == "," and depth == 0:
            parts.append(current)
            current = ""
        else:
            current += char
    if current:
        parts.append(current)
    return parts


class FakeRpc:
    def __init__(self, client: "FakeSupabase", name: str, params: Dict[str, Any]):
        self.client = client
        self.name = name
        self.params = params

    def execute(self):
        store = self.client.store
        store.calls.append(f"rpc:{self.name}")
        if self.name in store.dropped_functions:
            raise missing_function(self.name)
        failure = store.rpc_failures.get(self.name)
        if failure:
            error = failure.trigger()
            if error:
                raise error
        handler = getattr(self.client, f"_rpc_{self.name}", None)
        if handler is None:
            raise missing_function(self.name)
        return SimpleNamespace(data=handler(**self.params), count=None)


class FakeSupabase:
    """Client bound to one user (auth.uid()) over a shared Store."""

    def __init__(self, store: Optional[Store] = None, user_id: Optional[str] = None):
        self.store = store or Store()
        self.user_id = user_id

    @property
    def auth(self) -> "FakeAuth":
        return self.store.auth

    def as_user(self, user_id: Optional[str]) -> "FakeSupabase":
        return FakeSupabase(self.store, user_id)

    def for_token(self, token: str) -> "FakeSupabase":
        return self.as_user(self.store.auth.tokens.get(token))

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self.store, name)

    def rpc(self, name: str, params: Optional[Dict[str, Any]] = None) -> FakeRpc:
        return FakeRpc(self, name, params or {})

    # Test controls

    def fail_rpc(self, name: str, error: Optional[Exception] = None, times: Optional[int] = None):
        self.store.rpc_failures[name] = Failure(error or recursion_error(), times)

    def fail_table(self, name: str, error: Optional[Exception] = None, times: Optional[int] = None, ops=None):
        self.store.table_failures[name] = Failure(error or recursion_error(), times, set(ops) if ops else None)

    def drop_function(self, name: str):
        self.store.dropped_functions.add(name)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.store.rows(table)

    def seed(self, table: str, **values) -> Dict[str, Any]:
        return self.store.insert_row(table, values)

    def calls(self, prefix: str = "") -> List[str]:
        return [call for call in self.store.calls if call.startswith(prefix)]

    # RPC functions (SECURITY DEFINER: they read tables without RLS)

    def _member_rows(self, **filters) -> List[Dict[str, Any]]:
        return [
            row for row in self.store.rows("family_members")
            if all(row.get(key) == value for key, value in filters.items())
        ]

    def _my_family_ids(self) -> List[str]:
        return [row["family_id"] for row in self._member_rows(user_id=self.user_id)]

    def _rpc_get_user_families(self):
        ids = set(self._my_family_ids())
        return [dict(row) for row in self.store.rows("families") if row["id"] in ids]

    _rpc_get_user_families_safe = _rpc_get_user_families

    def _rpc_user_families(self):
        return [{"family_id": family_id} for family_id in self._my_family_ids()]

    def _rpc_safe_create_family(self, p_name, p_user_id):
        for family in self.store.rows("families"):
            if family.get("name") == p_name and family.get("created_by") == p_user_id:
                return family["id"]
        family = self.store.insert_row("families", {"name": p_name, "created_by": p_user_id})
        user = self.store.auth.user_by_id(p_user_id)
        email = user.email if user else ""
        self.store.insert_row("family_members", {
            "family_id": family["id"],
            "user_id": p_user_id,
            "email": email,
            "name": (user.user_metadata.get("full_name") if user else None) or email,
            "role": "admin",
        })
        return family["id"]

    def _rpc_get_family_members_by_family_id(self, p_family_id):
        return [dict(row) for row in self._member_rows(family_id=p_family_id)]

    def _rpc_safe_is_family_member(self, p_family_id):
        return bool(self._member_rows(family_id=p_family_id, user_id=self.user_id))

    def _rpc_safe_is_family_admin(self, p_family_id):
        return bool(self._member_rows(family_id=p_family_id, user_id=self.user_id, role="admin"))

    def _accessible_event_ids(self) -> set:
        family_ids = set(self._my_family_ids())
        shared = {
            link["event_id"] for link in self.store.rows("event_families")
            if link["family_id"] in family_ids
        }
        own = {event["id"] for event in self.store.rows("events") if event.get("creator_id") == self.user_id}
        return shared | own

    def _rpc_get_user_accessible_events_safe(self):
        ids = self._accessible_event_ids()
        return [dict(row) for row in self.store.rows("events") if row["id"] in ids]

    def _rpc_user_can_access_event_safe(self, event_id_param):
        return event_id_param in self._accessible_event_ids()

    def _rpc_handle_invitation_accept(self, invitation_id, user_id):
        invitation = next((row for row in self.store.rows("invitations") if row["id"] == invitation_id), None)
        if invitation is None or invitation["status"] != "pending":
            return False
        if not self._member_rows(family_id=invitation["family_id"], user_id=user_id):
            self.store.insert_row("family_members", {
                "family_id": invitation["family_id"],
                "user_id": user_id,
                "email": invitation["email"],
                "name": invitation.get("name") or invitation["email"],
                "role": invitation["role"],
            })
        invitation["status"] = "accepted"
        return True

    def _rpc_function_exists(self, function_name):
        return (
            function_name not in self.store.dropped_functions
            and hasattr(self, f"_rpc_{function_name}")
        )

    def _rpc_create_notification(self, p_user_id, p_title, p_message, p_type="info", p_metadata=None, p_action_url=None):
        row = self.store.insert_row("notifications", {
            "user_id": p_user_id,
            "title": p_title,
            "message": p_message,
            "type": p_type,
            "metadata": p_metadata or {},
            "action_url": p_action_url,
        })
        return row["id"]


class FakeAuth:
    def __init__(self, store: Store):
        self.store = store
        self.users: Dict[str, SimpleNamespace] = {}
        self.passwords: Dict[str, str] = {}
        self.tokens: Dict[str, str] = {}
        self.get_user_calls = 0
        self.sign_out_calls = 0

    def user_by_id(self, user_id: str) -> Optional[SimpleNamespace]:
        return next((user for user in self.users.values() if user.id == user_id), None)

    def create_user(self, email: str, password: str = "secret123", full_name: Optional[str] = None) -> SimpleNamespace:
        if email in self.users:
            raise Exception("User already registered")
        user = SimpleNamespace(
            id=str(uuid.uuid4()),
            email=email,
            user_metadata={"full_name": full_name} if full_name else {},
            app_metadata={},
            created_at=_now(),
            updated_at=_now(),
        )
        self.users[email] = user
        self.passwords[email] = password
        self.store.insert_row("profiles", {"id": user.id, "full_name": full_name, "Email": email})
        return user

    def issue_token(self, user: SimpleNamespace) -> str:
        token = f"token-{uuid.uuid4()}"
        self.tokens[token] = user.id
        return token

    def sign_up(self, credentials: Dict[str, Any]):
        data = (credentials.get("options") or {}).get("data") or {}
        user = self.create_user(credentials["email"], credentials["password"], data.get("full_name"))
        return SimpleNamespace(user=user, session=None)

    def sign_in_with_password(self, credentials: Dict[str, Any]):
        email = credentials["email"]
        if email not in self.users or self.passwords[email] != credentials["password"]:
            raise Exception("Invalid login credentials")
        user = self.users[email]
        session = SimpleNamespace(
            access_token=self.issue_token(user),
            refresh_token=f"refresh-{uuid.uuid4()}",
            expires_in=3600,
        )
        return SimpleNamespace(user=user, session=session)

    def get_user(self, jwt: Optional[str] = None):
        self.get_user_calls += 1
        user_id = self.tokens.get(jwt)
        if user_id is None:
            raise Exception("invalid JWT: unable to parse or verify signature")
        return SimpleNamespace(user=self.user_by_id(user_id))

    def sign_out(self):
        self.sign_out_calls += 1
