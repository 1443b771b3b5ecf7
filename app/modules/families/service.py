import logging
from datetime import datetime, timezone
from supabase import Client
from app.config import settings
from app.core.errors import is_missing_function, is_unique_violation, to_http_exception
from app.core.resilience import call_rpc, with_fallback, with_retry
from app.modules.families.schemas import (
    FamilyCreate, FamilyUpdate, FamilyResponse, FamilyCreateResponse,
    FamilyMemberResponse, EmailPreferencesUpdate, EmailPreferencesResponse
)
from app.modules.invitations.service import InvitationService, normalize_members
from typing import List, Optional, Dict, Any
from fastapi import HTTPException

logger = logging.getLogger(__name__)

INVITATION_WARNING = "Family created but there was an error inviting some members"


def _sort_key(row: Dict[str, Any]) -> str:
    return (row.get("name") or row.get("email") or "").lower()


def _unique_by_id(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    unique = {}
    for row in rows:
        unique.setdefault(row["id"], row)
    return list(unique.values())


class FamilyService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    # Reads

    def list_families(self, user_id: str) -> List[FamilyResponse]:
        """Families the user belongs to: RPC, then direct queries, retried on transient errors"""
        context = "Fetching families"

        def via_rpc():
            return call_rpc(self.supabase, "get_user_families") or []

        def via_table():
            members = self.supabase.table("family_members")\
                .select("family_id")\
                .eq("user_id", user_id)\
                .execute()
            family_ids = list({m["family_id"] for m in members.data or []})
            if not family_ids:
                return []
            result = self.supabase.table("families")\
                .select("*")\
                .in_("id", family_ids)\
                .execute()
            return result.data or []

        rows = with_retry(context, lambda: with_fallback(context, via_rpc, via_table))
        families = sorted(_unique_by_id(rows), key=_sort_key)
        logger.debug(f"Loaded {len(families)} families for user {user_id}")
        return [FamilyResponse(**family) for family in families]

    def get_family(self, family_id: str) -> FamilyResponse:
        """Get family by ID; looks through get_user_families when RLS hides the row"""
        def via_table():
            result = self.supabase.table("families")\
                .select("*")\
                .eq("id", family_id)\
                .limit(1)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Family not found")
            return result.data[0]

        def via_rpc():
            for family in call_rpc(self.supabase, "get_user_families") or []:
                if family["id"] == family_id:
                    return family
            raise HTTPException(status_code=404, detail="Family not found")

        return FamilyResponse(**with_fallback("Fetching family", via_table, via_rpc))

    def find_existing_family(self, name: str, user_id: str) -> Optional[FamilyResponse]:
        """Most recent family with this name created by the user"""
        result = self.supabase.table("families")\
            .select("*")\
            .eq("name", name)\
            .eq("created_by", user_id)\
            .order("created_at", desc=True)\
            .limit(1)\
            .execute()
        if not result.data:
            return None
        return FamilyResponse(**result.data[0])

    # Creation

    def _insert_family_directly(self, name: str, color: Optional[str], user_data: dict) -> str:
        result = self.supabase.table("families").insert({
            "name": name,
            "color": color or settings.default_family_color,
            "created_by": user_data["id"]
        }).execute()
        if not result.data:
            raise HTTPException(status_code=500, detail="Failed to create family")
        family_id = result.data[0]["id"]

        email = user_data.get("email") or ""
        try:
            self.supabase.table("family_members").insert({
                "family_id": family_id,
                "user_id": user_data["id"],
                "email": email,
                "name": (user_data.get("user_metadata") or {}).get("full_name") or email,
                "role": "admin",
                "joined_at": datetime.now(timezone.utc).isoformat()
            }).execute()
        except Exception as e:
            # A family without an admin is unreachable for its creator
            logger.error(f"Adding creator as admin of family {family_id} failed, removing it: {e}")
            try:
                self.supabase.table("families").delete().eq("id", family_id).execute()
            except Exception as cleanup_error:
                logger.error(f"Failed to remove family {family_id} after error: {cleanup_error}")
            raise to_http_exception(e, "Creating family")
        return family_id

    def _create_family_record(self, name: str, color: Optional[str], user_data: dict) -> str:
        """safe_create_family, tolerating unique violations and a missing function"""
        user_id = user_data["id"]
        try:
            family_id = call_rpc(self.supabase, "safe_create_family", {"p_name": name, "p_user_id": user_id})
        except Exception as e:
            if is_unique_violation(e):
                logger.warning("Constraint violation creating family, checking whether it was created anyway")
                existing = self.find_existing_family(name, user_id)
                if existing:
                    return existing.id
                raise to_http_exception(e, "Creating family")
            if is_missing_function(e):
                logger.warning("safe_create_family unavailable, creating family with direct inserts")
                return self._insert_family_directly(name, color, user_data)
            raise to_http_exception(e, "Creating family")
        if not family_id:
            raise HTTPException(status_code=500, detail="No data returned when creating family")
        if color:
            self.supabase.table("families").update({"color": color}).eq("id", family_id).execute()
        return family_id

    def _invite_initial_members(self, family_id: str, family_data: FamilyCreate, user_data: dict):
        """Returns (sent, warning)"""
        members = normalize_members(family_data.members, user_data.get("email"))
        if not members:
            return 0, None
        try:
            sent = InvitationService(self.supabase).send_invitations(family_id, members, user_data["id"])
            return len(sent), None
        except Exception as e:
            logger.error(f"Error sending invitations for family {family_id}: {e}")
            return 0, INVITATION_WARNING

    def create_family(self, family_data: FamilyCreate, user_data: dict) -> FamilyCreateResponse:
        """Create a family (or return the caller's existing one with the same name) and invite initial members"""
        try:
            existing = self.find_existing_family(family_data.name, user_data["id"])
            if existing:
                logger.info(f"Family '{family_data.name}' already exists for user {user_data['id']}")
                sent, warning = self._invite_initial_members(existing.id, family_data, user_data)
                return FamilyCreateResponse(**existing.model_dump(), invitations_sent=sent, warning=warning)

            family_id = self._create_family_record(family_data.name, family_data.color, user_data)
            logger.info(f"Family created with ID: {family_id}")
            sent, warning = self._invite_initial_members(family_id, family_data, user_data)

            try:
                family = self.get_family(family_id)
            except HTTPException:
                logger.warning(f"Family {family_id} created but could not be read back")
                family = FamilyResponse(
                    id=family_id,
                    name=family_data.name,
                    color=family_data.color or settings.default_family_color,
                    created_by=user_data["id"],
                    created_at=datetime.now(timezone.utc),
                )
            return FamilyCreateResponse(**family.model_dump(), invitations_sent=sent, warning=warning)
        except HTTPException:
            raise
        except Exception as e:
            raise to_http_exception(e, "Creating family")

    # Updates

    def update_family(self, family_id: str, family_data: FamilyUpdate) -> FamilyResponse:
        """Update family name and/or color"""
        update_data = family_data.model_dump(exclude_none=True)
        if not update_data:
            return self.get_family(family_id)
        try:
            result = self.supabase.table("families")\
                .update(update_data)\
                .eq("id", family_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Family not found")
            return FamilyResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise to_http_exception(e, "Updating family")

    def delete_family(self, family_id: str) -> bool:
        """Delete family with its event links, invitations, members and email preferences"""
        try:
            for table in ("event_families", "invitations", "email_preferences", "family_members"):
                self.supabase.table(table)\
                    .delete()\
                    .eq("family_id", family_id)\
                    .execute()

            result = self.supabase.table("families")\
                .delete()\
                .eq("id", family_id)\
                .execute()
            logger.info(f"Deleted family {family_id}")
            return len(result.data or []) > 0
        except Exception as e:
            raise to_http_exception(e, "Deleting family")

    # Members

    def list_members(self, family_id: str) -> List[FamilyMemberResponse]:
        """Members of a family: RPC, then direct query, retried on transient errors"""
        context = "Fetching family members"

        def via_rpc():
            return call_rpc(self.supabase, "get_family_members_by_family_id", {"p_family_id": family_id}) or []

        def via_table():
            result = self.supabase.table("family_members")\
                .select("*")\
                .eq("family_id", family_id)\
                .order("name")\
                .execute()
            return result.data or []

        rows = with_retry(context, lambda: with_fallback(context, via_rpc, via_table))
        return [FamilyMemberResponse(**member) for member in sorted(_unique_by_id(rows), key=_sort_key)]

    def get_member(self, family_id: str, member_id: str) -> FamilyMemberResponse:
        try:
            result = self.supabase.table("family_members")\
                .select("*")\
                .eq("id", member_id)\
                .eq("family_id", family_id)\
                .limit(1)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Family member not found")
            return FamilyMemberResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise to_http_exception(e, "Fetching family member")

    def _admin_count(self, family_id: str) -> int:
        result = self.supabase.table("family_members")\
            .select("id")\
            .eq("family_id", family_id)\
            .eq("role", "admin")\
            .execute()
        return len(result.data or [])

    def _ensure_not_last_admin(self, member: FamilyMemberResponse, message: str):
        if member.role == "admin" and self._admin_count(member.family_id) <= 1:
            raise HTTPException(status_code=400, detail=message)

    def update_member_role(self, family_id: str, member_id: str, role: str) -> FamilyMemberResponse:
        member = self.get_member(family_id, member_id)
        if member.role == role:
            return member
        if role != "admin":
            self._ensure_not_last_admin(member, "A family must keep at least one admin")
        try:
            result = self.supabase.table("family_members")\
                .update({"role": role})\
                .eq("id", member_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Family member not found")
            return FamilyMemberResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise to_http_exception(e, "Updating family member")

    def remove_member(self, family_id: str, member_id: str) -> bool:
        member = self.get_member(family_id, member_id)
        self._ensure_not_last_admin(member, "Cannot remove the last admin of a family")
        try:
            result = self.supabase.table("family_members")\
                .delete()\
                .eq("id", member_id)\
                .execute()
            return len(result.data or []) > 0
        except Exception as e:
            raise to_http_exception(e, "Removing family member")

    def list_memberships(self, user_id: str) -> List[Dict[str, str]]:
        """(family_id, family_name, role) for every family of the user"""
        families = {family.id: family.name for family in self.list_families(user_id)}
        if not families:
            return []
        result = self.supabase.table("family_members")\
            .select("family_id, role")\
            .eq("user_id", user_id)\
            .execute()
        roles = {row["family_id"]: row["role"] for row in result.data or []}
        return [
            {"family_id": family_id, "family_name": name, "role": roles.get(family_id, "member")}
            for family_id, name in families.items()
        ]

    # Email preferences

    def get_email_preferences(self, family_id: str) -> EmailPreferencesResponse:
        try:
            result = self.supabase.table("email_preferences")\
                .select("*")\
                .eq("family_id", family_id)\
                .limit(1)\
                .execute()
            if not result.data:
                return EmailPreferencesResponse(family_id=family_id)
            return EmailPreferencesResponse(**result.data[0])
        except Exception as e:
            raise to_http_exception(e, "Fetching email preferences")

    def update_email_preferences(self, family_id: str, data: EmailPreferencesUpdate) -> EmailPreferencesResponse:
        current = self.get_email_preferences(family_id)
        merged = current.model_dump(exclude={"updated_at"})
        merged.update(data.model_dump(exclude_none=True))
        merged["updated_at"] = datetime.now(timezone.utc).isoformat()
        try:
            result = self.supabase.table("email_preferences")\
                .upsert(merged, on_conflict="family_id")\
                .execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to save email preferences")
            return EmailPreferencesResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise to_http_exception(e, "Updating email preferences")
