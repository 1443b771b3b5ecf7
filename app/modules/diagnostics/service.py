import logging
from supabase import Client
from app.core.errors import error_message
from app.core.resilience import call_rpc
from app.modules.diagnostics.schemas import FamilyHealthResponse
from typing import List, Dict, Any

logger = logging.getLogger(__name__)

REQUIRED_FUNCTIONS = ("safe_create_family", "get_user_families")
OPTIONAL_FUNCTIONS = ("get_family_members_by_family_id", "get_user_accessible_events_safe")


class HealthCheck:
    """Issues collected while probing the database, split by severity"""

    def __init__(self):
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def error(self, issue: str):
        logger.error(f"Family health check: {issue}")
        self.errors.append(issue)

    def warning(self, issue: str):
        logger.warning(f"Family health check: {issue}")
        self.warnings.append(issue)

    @property
    def status(self) -> str:
        if self.errors:
            return "error"
        if self.warnings:
            return "warning"
        return "healthy"

    @property
    def issues(self) -> List[str]:
        return self.errors + self.warnings


def build_health_report(check: HealthCheck, details: Dict[str, Any]) -> str:
    """Markdown summary with the **Errors:** / **Warnings:** counts"""
    lines = [
        "# Family System Health Check",
        "",
        f"- **Status:** {check.status.upper()}",
        f"- **Errors:** {len(check.errors)}",
        f"- **Warnings:** {len(check.warnings)}",
        "",
    ]
    if check.errors:
        lines += ["## Errors", ""] + [f"- {issue}" for issue in check.errors] + [""]
    if check.warnings:
        lines += ["## Warnings", ""] + [f"- {issue}" for issue in check.warnings] + [""]

    functions = details.get("functions", {})
    if functions:
        lines += ["## Database functions", ""]
        lines += [f"- `{name}`: {'available' if ok else 'missing'}" for name, ok in functions.items()]
        lines.append("")
    permissions = details.get("permissions", {})
    if permissions:
        lines += ["## Access", ""]
        lines += [f"- {name.replace('_', ' ')}: {'yes' if ok else 'no'}" for name, ok in permissions.items()]
        lines.append("")
    return "\n".join(lines)


class FamilyHealthService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _function_exists(self, name: str, check: HealthCheck) -> bool:
        try:
            return bool(call_rpc(self.supabase, "function_exists", {"function_name": name}))
        except Exception as e:
            check.warning(f"Cannot check function {name}: {error_message(e)}")
            return False

    def _run_checks(self, check: HealthCheck) -> Dict[str, Any]:
        functions = {name: self._function_exists(name, check) for name in REQUIRED_FUNCTIONS + OPTIONAL_FUNCTIONS}
        if not all(functions[name] for name in REQUIRED_FUNCTIONS):
            check.error("Missing required database functions")
        if not functions["get_family_members_by_family_id"]:
            check.warning("Missing get_family_members_by_family_id function")

        can_select_families = True
        try:
            self.supabase.table("families").select("id").limit(1).execute()
        except Exception as e:
            can_select_families = False
            check.warning(f"Cannot access families table: {error_message(e)}")

        events_access_works = False
        if functions["get_user_accessible_events_safe"]:
            try:
                events_access_works = call_rpc(self.supabase, "get_user_accessible_events_safe") is not None
            except Exception as e:
                check.warning(f"Events access error: {error_message(e)}")
        else:
            check.warning("Missing get_user_accessible_events_safe function")

        user_families: List[Dict[str, Any]] = []
        try:
            user_families = call_rpc(self.supabase, "get_user_families") or []
        except Exception as e:
            check.warning(f"Cannot fetch user families: {error_message(e)}")

        return {
            "functions": functions,
            "permissions": {
                "can_select_families": can_select_families,
                "can_invoke_functions": all(functions[name] for name in REQUIRED_FUNCTIONS),
                "events_access_works": events_access_works,
            },
            "user_families": user_families,
        }

    def check_health(self) -> FamilyHealthResponse:
        """Probe the functions and tables family management depends on"""
        check = HealthCheck()
        try:
            details = self._run_checks(check)
        except Exception as e:
            logger.exception(f"Health check error: {e}")
            check.error("Unexpected error during health check")
            details = {}
        return FamilyHealthResponse(
            status=check.status,
            issues=check.issues,
            can_create_family=check.status != "error",
            details=details or None,
            report=build_health_report(check, details),
        )
