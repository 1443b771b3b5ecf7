import logging
from supabase import Client
from app.config import settings
from app.core.errors import to_http_exception
from app.core.resilience import call_rpc
from app.modules.notifications.schemas import (
    NotificationResponse, NotificationListResponse, MarkAllReadResponse
)
from typing import Optional, Dict, Any
from fastapi import HTTPException

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def list_notifications(self, user_id: str, limit: Optional[int] = None) -> NotificationListResponse:
        """Latest notifications for the user, newest first"""
        try:
            result = self.supabase.table("notifications")\
                .select("*")\
                .eq("user_id", user_id)\
                .order("created_at", desc=True)\
                .limit(limit or settings.notifications_limit)\
                .execute()
            notifications = [NotificationResponse(**row) for row in result.data or []]
            unread = sum(1 for n in notifications if not n.read)
            return NotificationListResponse(notifications=notifications, unread_count=unread)
        except Exception as e:
            raise to_http_exception(e, "Fetching notifications")

    def mark_as_read(self, notification_id: str, user_id: str) -> NotificationResponse:
        try:
            result = self.supabase.table("notifications")\
                .update({"read": True})\
                .eq("id", notification_id)\
                .eq("user_id", user_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Notification not found")
            return NotificationResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise to_http_exception(e, "Marking notification as read")

    def mark_all_as_read(self, user_id: str) -> MarkAllReadResponse:
        try:
            unread = self.supabase.table("notifications")\
                .select("id")\
                .eq("user_id", user_id)\
                .eq("read", False)\
                .execute()
            unread_ids = [row["id"] for row in unread.data or []]
            if not unread_ids:
                return MarkAllReadResponse(updated=0)
            result = self.supabase.table("notifications")\
                .update({"read": True})\
                .in_("id", unread_ids)\
                .execute()
            return MarkAllReadResponse(updated=len(result.data or []))
        except Exception as e:
            raise to_http_exception(e, "Marking all notifications as read")

    def notify(
        self,
        user_id: str,
        title: str,
        message: str,
        notification_type: str = "info",
        metadata: Optional[Dict[str, Any]] = None,
        action_url: Optional[str] = None,
    ) -> Optional[str]:
        """Create a notification for any user. Failures are logged and never raised."""
        try:
            return call_rpc(self.supabase, "create_notification", {
                "p_user_id": user_id,
                "p_title": title,
                "p_message": message,
                "p_type": notification_type,
                "p_metadata": metadata or {},
                "p_action_url": action_url,
            })
        except Exception as e:
            logger.error(f"Failed to notify user {user_id}: {e}")
            return None
