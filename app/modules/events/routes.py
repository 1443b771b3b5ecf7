from fastapi import APIRouter, Depends, Query
from app.database.supabase_client import get_user_supabase
from app.modules.events.schemas import (
    EventCreate, EventUpdate, EventResponse, EventMutationResponse, EventDeleteResponse
)
from app.modules.events.service import EventService
from app.core.dependencies import get_current_user
from supabase import Client
from typing import List, Optional, Dict
from datetime import date

router = APIRouter(prefix="/events", tags=["events"])


def get_event_service(supabase: Client = Depends(get_user_supabase)) -> EventService:
    return EventService(supabase)


@router.get("", response_model=List[EventResponse])
async def list_events(
    start: Optional[date] = None,
    end: Optional[date] = None,
    limit: Optional[int] = Query(default=None, ge=1),
    current_user: Dict = Depends(get_current_user),
    service: EventService = Depends(get_event_service)
):
    """Events the user created or that are shared with their families, optionally within [start, end]"""
    return service.list_events(current_user["id"], start=start, end=end, limit=limit)


@router.post("", response_model=EventMutationResponse, status_code=201)
async def create_event(
    event_data: EventCreate,
    current_user: Dict = Depends(get_current_user),
    service: EventService = Depends(get_event_service)
):
    return service.create_event(event_data, current_user)


@router.get("/{event_id}", response_model=EventResponse)
async def get_event(
    event_id: str,
    current_user: Dict = Depends(get_current_user),
    service: EventService = Depends(get_event_service)
):
    return service.get_event(event_id, current_user["id"])


@router.put("/{event_id}", response_model=EventMutationResponse)
async def update_event(
    event_id: str,
    event_data: EventUpdate,
    current_user: Dict = Depends(get_current_user),
    service: EventService = Depends(get_event_service)
):
    """Update an event (creator only)"""
    return service.update_event(event_id, event_data, current_user)


@router.delete("/{event_id}", response_model=EventDeleteResponse)
async def delete_event(
    event_id: str,
    current_user: Dict = Depends(get_current_user),
    service: EventService = Depends(get_event_service)
):
    """Delete an event (creator only)"""
    return service.delete_event(event_id, current_user["id"])
