import logging
from datetime import date
from supabase import Client
from app.config import settings
from app.core.dependencies import check_family_member, get_user_family_ids
from app.core.errors import to_http_exception
from app.core.resilience import call_rpc, with_fallback, with_retry
from app.modules.events.formatting import (
    parse_event_date, prepare_event_data, prepare_event_update, safe_from_db_event
)
from app.modules.events.schemas import (
    EventCreate, EventUpdate, EventResponse, EventMutationResponse, EventDeleteResponse
)
from app.modules.profiles.service import ProfileService
from typing import List, Optional, Dict, Any
from fastapi import HTTPException

logger = logging.getLogger(__name__)

ASSOCIATION_WARNING = "Event saved but could not be shared with some families"


def _in_range(row: Dict[str, Any], start: Optional[date], end: Optional[date]) -> bool:
    """True when the event overlaps [start, end]. Rows without a readable date match no range."""
    if start is None and end is None:
        return True
    try:
        first = parse_event_date(row.get("date"))
        last = parse_event_date(row["end_date"]) if row.get("end_date") else first
    except ValueError:
        return False
    if start is not None and last < start:
        return False
    if end is not None and first > end:
        return False
    return True


def _within_range(query, start: Optional[date], end: Optional[date]):
    """Same overlap test as _in_range, applied before the query's limit"""
    if start is not None:
        # end_date is empty on single-day rows written by older clients
        query = query.or_(f"end_date.gte.{start.isoformat()},date.gte.{start.isoformat()}")
    if end is not None:
        query = query.lte("date", end.isoformat())
    return query


class EventService:
    def __init__(self, supabase: Client):
        self.supabase = supabase
        # Membership lookups shared by the calls of one request
        self.access_cache: Dict[str, Any] = {}

    # Reads

    def _personal_events(self, user_id: str, limit: int, start=None, end=None) -> List[Dict[str, Any]]:
        query = self.supabase.table("events")\
            .select("*")\
            .eq("creator_id", user_id)
        result = _within_range(query, start, end)\
            .order("date")\
            .order("time")\
            .limit(limit)\
            .execute()
        return result.data or []

    def _shared_events(self, event_ids: List[str], limit: int, start=None, end=None) -> List[Dict[str, Any]]:
        query = self.supabase.table("events")\
            .select("*")\
            .in_("id", event_ids)
        result = _within_range(query, start, end)\
            .order("date")\
            .order("time")\
            .limit(limit)\
            .execute()
        return result.data or []

    def _shared_and_personal_events(self, user_id: str, limit: int, start=None, end=None) -> List[Dict[str, Any]]:
        """Own events plus events shared with the user's families, each query range-filtered and limited"""
        family_ids = get_user_family_ids(user_id, self.supabase, self.access_cache)
        shared_ids: List[str] = []
        if family_ids:
            links = self.supabase.table("event_families")\
                .select("event_id")\
                .in_("family_id", family_ids)\
                .execute()
            shared_ids = list(dict.fromkeys(link["event_id"] for link in links.data or []))
        rows = self._personal_events(user_id, limit, start, end)
        if shared_ids:
            rows += self._shared_events(shared_ids, limit, start, end)
        return rows

    def _family_ids_by_event(self, event_ids: List[str]) -> Dict[str, List[str]]:
        """Family ids per event; lookup failures leave events unshared in the response"""
        if not event_ids:
            return {}
        try:
            result = self.supabase.table("event_families")\
                .select("event_id, family_id")\
                .in_("event_id", event_ids)\
                .execute()
        except Exception as e:
            logger.error(f"Error fetching event families: {e}")
            return {}
        family_ids: Dict[str, List[str]] = {}
        for link in result.data or []:
            ids = family_ids.setdefault(link["event_id"], [])
            if link["family_id"] not in ids:
                ids.append(link["family_id"])
        return family_ids

    def _to_responses(self, rows: List[Dict[str, Any]]) -> List[EventResponse]:
        """Attach family ids and creator names (one query each) and format rows"""
        ids = [row["id"] for row in rows if row.get("id")]
        family_ids = self._family_ids_by_event(ids)
        names = ProfileService(self.supabase).get_display_names(row.get("creator_id") for row in rows)
        return [
            safe_from_db_event(
                row,
                creator_name=names.get(row.get("creator_id"), "Unknown"),
                family_ids=family_ids.get(row.get("id"), []),
            )
            for row in rows
        ]

    def list_events(
        self,
        user_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> List[EventResponse]:
        """Events the user created or that are shared with one of their families.

        RPC first, then direct queries for shared and own events, then own events
        only; the fallback queries apply the date range before their limit and
        the whole chain is retried on recoverable errors.
        """
        context = "Fetching events"
        limit = limit or settings.events_default_limit

        def via_rpc():
            return call_rpc(self.supabase, "get_user_accessible_events_safe") or []

        rows = with_retry(context, lambda: with_fallback(
            context,
            via_rpc,
            lambda: self._shared_and_personal_events(user_id, limit, start, end),
            lambda: self._personal_events(user_id, limit, start, end),
        ))

        unique = {}
        for row in rows:
            unique.setdefault(row.get("id"), row)
        filtered = [row for row in unique.values() if _in_range(row, start, end)]
        events = self._to_responses(filtered)
        events.sort(key=lambda event: (event.date, event.time))
        logger.info(f"Loaded {len(events)} events for user {user_id}")
        return events[:limit]

    def _get_event_row(self, event_id: str) -> Dict[str, Any]:
        try:
            result = self.supabase.table("events")\
                .select("*")\
                .eq("id", event_id)\
                .limit(1)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Event not found")
            return result.data[0]
        except HTTPException:
            raise
        except Exception as e:
            raise to_http_exception(e, "Fetching event")

    def _can_access_directly(self, row: Dict[str, Any], user_id: str) -> bool:
        if row.get("creator_id") == user_id:
            return True
        family_ids = get_user_family_ids(user_id, self.supabase, self.access_cache)
        if not family_ids:
            return False
        links = self.supabase.table("event_families")\
            .select("id")\
            .eq("event_id", row["id"])\
            .in_("family_id", family_ids)\
            .limit(1)\
            .execute()
        return bool(links.data)

    def can_access_event(self, row: Dict[str, Any], user_id: str) -> bool:
        return bool(with_fallback(
            "Checking event access",
            lambda: call_rpc(self.supabase, "user_can_access_event_safe", {"event_id_param": row["id"]}),
            lambda: self._can_access_directly(row, user_id),
        ))

    def get_event(self, event_id: str, user_id: str) -> EventResponse:
        row = self._get_event_row(event_id)
        if not self.can_access_event(row, user_id):
            raise HTTPException(status_code=403, detail="You do not have permission to access this event")
        return self._to_responses([row])[0]

    # Writes

    def _ensure_profile(self, user_data: dict):
        """Events reference the creator's profile; create it when the signup trigger did not"""
        try:
            result = self.supabase.table("profiles")\
                .select("id")\
                .eq("id", user_data["id"])\
                .limit(1)\
                .execute()
            if result.data:
                return
            logger.info(f"Creating missing profile for user {user_data['id']}")
            self.supabase.table("profiles").insert({
                "id": user_data["id"],
                "full_name": (user_data.get("user_metadata") or {}).get("full_name"),
                "Email": user_data.get("email"),
            }).execute()
        except Exception as e:
            raise to_http_exception(e, "Verifying user profile")

    def _share_with_families(self, event_id: str, family_ids: List[str], user_id: str) -> Optional[str]:
        """Link the event to families; returns a warning instead of raising"""
        if not family_ids:
            return None
        rows = [{
            "event_id": event_id,
            "family_id": family_id,
            "shared_by": user_id,
        } for family_id in dict.fromkeys(family_ids)]
        try:
            self.supabase.table("event_families").insert(rows).execute()
            return None
        except Exception as e:
            logger.error(f"Event {event_id} saved but family association failed: {e}")
            return ASSOCIATION_WARNING

    def _check_families(self, family_ids: List[str], user_data: dict):
        for family_id in dict.fromkeys(family_ids):
            check_family_member(family_id, user_data, self.supabase)

    def create_event(self, event_data: EventCreate, user_data: dict) -> EventMutationResponse:
        """Create an event and share it with the given families (caller must belong to each)"""
        self._check_families(event_data.family_ids, user_data)
        self._ensure_profile(user_data)
        try:
            result = self.supabase.table("events")\
                .insert(prepare_event_data(event_data, user_data["id"]))\
                .execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="No data returned when creating event")
            row = result.data[0]
        except HTTPException:
            raise
        except Exception as e:
            raise to_http_exception(e, "Creating event")

        logger.info(f"Event created with ID: {row['id']}")
        warning = self._share_with_families(row["id"], event_data.family_ids, user_data["id"])
        event = self._to_responses([row])[0]
        return EventMutationResponse(**event.model_dump(), warning=warning)

    def _require_creator(self, row: Dict[str, Any], user_id: str, action: str):
        if row.get("creator_id") != user_id:
            raise HTTPException(status_code=403, detail=f"You can only {action} events that you created")

    def update_event(self, event_id: str, event_data: EventUpdate, user_data: dict) -> EventMutationResponse:
        row = self._get_event_row(event_id)
        self._require_creator(row, user_data["id"], "edit")
        if event_data.family_ids is not None:
            self._check_families(event_data.family_ids, user_data)

        update_data = prepare_event_update(event_data)
        if "date" in update_data and "end_date" not in update_data:
            current_end = row.get("end_date")
            if not current_end or current_end < update_data["date"]:
                update_data["end_date"] = update_data["date"]
        if event_data.end_date and not event_data.date:
            try:
                start = parse_event_date(row.get("date"))
            except ValueError:
                start = None
            if start and event_data.end_date < start:
                raise HTTPException(status_code=400, detail="End date cannot be before the start date")
        if update_data:
            try:
                result = self.supabase.table("events")\
                    .update(update_data)\
                    .eq("id", event_id)\
                    .execute()
                if not result.data:
                    raise HTTPException(status_code=404, detail="Event not found")
                row = result.data[0]
            except HTTPException:
                raise
            except Exception as e:
                raise to_http_exception(e, "Updating event")

        warning = None
        if event_data.family_ids is not None:
            try:
                self.supabase.table("event_families")\
                    .delete()\
                    .eq("event_id", event_id)\
                    .execute()
                warning = self._share_with_families(event_id, event_data.family_ids, user_data["id"])
            except Exception as e:
                logger.error(f"Failed to replace family associations of event {event_id}: {e}")
                warning = ASSOCIATION_WARNING

        event = self._to_responses([row])[0]
        return EventMutationResponse(**event.model_dump(), warning=warning)

    def delete_event(self, event_id: str, user_id: str) -> EventDeleteResponse:
        row = self._get_event_row(event_id)
        self._require_creator(row, user_id, "delete")
        try:
            self.supabase.table("event_families")\
                .delete()\
                .eq("event_id", event_id)\
                .execute()
            self.supabase.table("events")\
                .delete()\
                .eq("id", event_id)\
                .execute()
        except Exception as e:
            raise to_http_exception(e, "Deleting event")
        name = row.get("name") or "Untitled Event"
        logger.info(f"Deleted event {event_id}")
        return EventDeleteResponse(message=f'Event "{name}" deleted successfully')
