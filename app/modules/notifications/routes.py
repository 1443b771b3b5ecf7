from fastapi import APIRouter, Depends, Query
from app.database.supabase_client import get_user_supabase
from app.modules.notifications.schemas import (
    NotificationResponse, NotificationListResponse, MarkAllReadResponse
)
from app.modules.notifications.service import NotificationService
from app.core.dependencies import get_current_user
from supabase import Client
from typing import Dict, Optional

router = APIRouter(prefix="/notifications", tags=["notifications"])


def get_notification_service(supabase: Client = Depends(get_user_supabase)) -> NotificationService:
    return NotificationService(supabase)


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    limit: Optional[int] = Query(default=None, ge=1),
    current_user: Dict = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service)
):
    """Latest notifications with the unread count"""
    return service.list_notifications(current_user["id"], limit=limit)


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_as_read(
    current_user: Dict = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service)
):
    return service.mark_all_as_read(current_user["id"])


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_as_read(
    notification_id: str,
    current_user: Dict = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service)
):
    return service.mark_as_read(notification_id, current_user["id"])
