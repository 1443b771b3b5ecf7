"""
Conversion between event rows and API models.

Rows written by older clients can miss fields or carry timestamps instead of
plain dates, so reading is lenient: gaps get defaults and a row that cannot
be read at all becomes a placeholder instead of breaking the whole list.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from app.modules.events.schemas import EventCreate, EventUpdate, EventResponse

logger = logging.getLogger(__name__)

MALFORMED_EVENT_NAME = "Error: Malformed Event"
MALFORMED_EVENT_DESCRIPTION = "This event could not be properly loaded."


def parse_event_date(value: Any) -> date:
    """Date of a stored value; timestamps are normalised to UTC first."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return value
    else:
        text = str(value or "").strip()
        if not text:
            raise ValueError("Event has no date")
        if len(text) == 10:
            return date.fromisoformat(text)
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date()


def prepare_event_data(event: EventCreate, creator_id: str) -> Dict[str, Any]:
    """Row for the events table"""
    return {
        "name": event.name,
        "date": event.date.isoformat(),
        "end_date": (event.end_date or event.date).isoformat(),
        "time": event.time,
        "description": event.description or "",
        "creator_id": creator_id,
        "all_day": bool(event.all_day),
    }


def prepare_event_update(event: EventUpdate) -> Dict[str, Any]:
    update_data = event.model_dump(exclude_none=True, exclude={"family_ids"})
    for key in ("date", "end_date"):
        if key in update_data:
            update_data[key] = update_data[key].isoformat()
    return update_data


def from_db_event(
    row: Dict[str, Any],
    creator_name: str = "Unknown",
    family_ids: Optional[List[str]] = None,
) -> EventResponse:
    """Raises when the row has no id or no readable date."""
    event_date = parse_event_date(row.get("date"))
    end_date = parse_event_date(row["end_date"]) if row.get("end_date") else None
    return EventResponse(
        id=row["id"],
        name=row.get("name") or "Untitled Event",
        date=event_date,
        end_date=end_date,
        time=row.get("time") or "00:00",
        description=row.get("description") or "",
        creator_id=row.get("creator_id") or "unknown",
        all_day=bool(row.get("all_day")),
        family_ids=family_ids or [],
        creator_name=creator_name,
    )


def safe_from_db_event(
    row: Dict[str, Any],
    creator_name: str = "Unknown",
    family_ids: Optional[List[str]] = None,
) -> EventResponse:
    try:
        return from_db_event(row, creator_name, family_ids)
    except Exception as e:
        logger.error(f"Error formatting event {row.get('id')}: {e}")
        return EventResponse(
            id=row.get("id") or "unknown-id",
            name=MALFORMED_EVENT_NAME,
            date=datetime.now(timezone.utc).date(),
            time="00:00",
            description=MALFORMED_EVENT_DESCRIPTION,
            creator_id=row.get("creator_id") or "unknown",
            all_day=False,
            family_ids=family_ids or [],
            creator_name="Unknown",
        )
