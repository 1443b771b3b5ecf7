import logging
from datetime import datetime, timezone
from supabase import Client
from app.core.errors import to_http_exception
from app.modules.profiles.schemas import ProfileResponse, ProfileUpdate
from typing import Dict, Iterable, Optional, Any
from fastapi import HTTPException

logger = logging.getLogger(__name__)


def display_name(profile: Optional[Dict[str, Any]], user_id: Optional[str]) -> str:
    """Name shown for an event creator: full name, email, short id, or "Unknown"."""
    profile = profile or {}
    return (
        profile.get("full_name")
        or profile.get("Email")
        or (user_id or "")[:8]
        or "Unknown"
    )


class ProfileService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_profile(self, user_id: str) -> ProfileResponse:
        try:
            result = self.supabase.table("profiles")\
                .select("*")\
                .eq("id", user_id)\
                .limit(1)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Profile not found")
            return ProfileResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise to_http_exception(e, "Fetching profile")

    def update_profile(self, user_id: str, profile_data: ProfileUpdate) -> ProfileResponse:
        """Update (or create) the user's own profile"""
        update_data = profile_data.model_dump(exclude_none=True)
        update_data["id"] = user_id
        update_data["updated_at"] = datetime.now(timezone.utc).isoformat()
        try:
            result = self.supabase.table("profiles")\
                .upsert(update_data, on_conflict="id")\
                .execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to update profile")
            return ProfileResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise to_http_exception(e, "Updating profile")

    def get_display_names(self, user_ids: Iterable[str]) -> Dict[str, str]:
        """Display names for many users, fetched with a single profiles query.

        Lookup failures are logged; affected users fall back to their short id.
        """
        ids = [user_id for user_id in dict.fromkeys(user_ids) if user_id]
        if not ids:
            return {}
        profiles = {}
        try:
            result = self.supabase.table("profiles")\
                .select("id, full_name, Email")\
                .in_("id", ids)\
                .execute()
            profiles = {row["id"]: row for row in result.data or []}
            logger.debug(f"Fetched {len(profiles)} profiles in a single query")
        except Exception as e:
            logger.error(f"Error fetching profiles: {e}")
        return {user_id: display_name(profiles.get(user_id), user_id) for user_id in ids}
