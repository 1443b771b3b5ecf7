import logging
from datetime import datetime, timezone
from supabase import Client
from app.core.errors import is_missing_function, is_unique_violation, to_http_exception
from app.core.resilience import call_rpc
from app.modules.families.schemas import FAMILY_ROLES, FamilyMemberResponse, InitialMember
from app.modules.invitations.schemas import InvitationCreate, InvitationResponse
from app.modules.notifications.service import NotificationService
from typing import List, Dict, Any, Iterable, Optional
from fastapi import HTTPException

logger = logging.getLogger(__name__)


def normalize_members(members: Iterable[InitialMember], current_user_email: Optional[str]) -> List[Dict[str, str]]:
    """Drop invalid entries, the inviter's own address and duplicates; lowercase emails."""
    own_email = (current_user_email or "").strip().lower()
    seen = set()
    normalized = []
    for member in members:
        email = (member.email or "").strip().lower()
        if not email or member.role not in FAMILY_ROLES:
            continue
        if email == own_email or email in seen:
            continue
        seen.add(email)
        normalized.append({
            "email": email,
            "name": (member.name or "").strip() or email.split("@")[0],
            "role": member.role,
        })
    return normalized


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class InvitationService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def send_invitations(self, family_id: str, members: List[Dict[str, str]], inviter_id: str) -> List[InvitationResponse]:
        """Upsert invitations for already-normalized members; re-inviting refreshes last_invited"""
        if not members:
            return []
        now = _now()
        rows = [{
            "family_id": family_id,
            "email": member["email"],
            "name": member["name"],
            "role": member["role"],
            "status": "pending",
            "invited_by": inviter_id,
            "last_invited": now,
        } for member in members]
        result = self.supabase.table("invitations")\
            .upsert(rows, on_conflict="family_id,email")\
            .execute()
        logger.info(f"Sent {len(result.data or [])} invitation(s) for family {family_id}")
        return [InvitationResponse(**row) for row in result.data or []]

    def invite_member(self, family_id: str, data: InvitationCreate, user_data: dict) -> InvitationResponse:
        """Invite a single person to a family"""
        members = normalize_members(
            [InitialMember(email=data.email, name=data.name, role=data.role)],
            user_data.get("email"),
        )
        if not members:
            raise HTTPException(status_code=400, detail="You cannot invite yourself")
        try:
            existing = self.supabase.table("family_members")\
                .select("id")\
                .eq("family_id", family_id)\
                .eq("email", members[0]["email"])\
                .limit(1)\
                .execute()
            if existing.data:
                raise HTTPException(status_code=409, detail="This person is already a member of the family")
            invitations = self.send_invitations(family_id, members, user_data["id"])
            if not invitations:
                raise HTTPException(status_code=500, detail="Failed to send invitation")
            return invitations[0]
        except HTTPException:
            raise
        except Exception as e:
            raise to_http_exception(e, "Inviting family member")

    def list_family_invitations(self, family_id: str) -> List[InvitationResponse]:
        """Pending invitations of a family"""
        try:
            result = self.supabase.table("invitations")\
                .select("*")\
                .eq("family_id", family_id)\
                .eq("status", "pending")\
                .order("invited_at", desc=True)\
                .execute()
            return [InvitationResponse(**row) for row in result.data or []]
        except Exception as e:
            raise to_http_exception(e, "Fetching family invitations")

    def list_for_email(self, email: Optional[str]) -> List[InvitationResponse]:
        """Pending invitations addressed to an email"""
        if not email:
            return []
        try:
            result = self.supabase.table("invitations")\
                .select("*")\
                .eq("email", email.strip().lower())\
                .eq("status", "pending")\
                .order("invited_at", desc=True)\
                .execute()
            return [InvitationResponse(**row) for row in result.data or []]
        except Exception as e:
            raise to_http_exception(e, "Fetching invitations")

    def get_invitation(self, invitation_id: str) -> InvitationResponse:
        try:
            result = self.supabase.table("invitations")\
                .select("*")\
                .eq("id", invitation_id)\
                .limit(1)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Invitation not found")
            return InvitationResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise to_http_exception(e, "Fetching invitation")

    def resend_invitation(self, invitation_id: str) -> InvitationResponse:
        try:
            result = self.supabase.table("invitations")\
                .update({"last_invited": _now()})\
                .eq("id", invitation_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Invitation not found")
            return InvitationResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise to_http_exception(e, "Resending invitation")

    def _check_addressee(self, invitation: InvitationResponse, user_data: dict):
        if (user_data.get("email") or "").strip().lower() != invitation.email.lower():
            raise HTTPException(status_code=403, detail="This invitation was sent to a different email address")
        if invitation.status != "pending":
            raise HTTPException(status_code=400, detail=f"Invitation is already {invitation.status}")

    def _accept_directly(self, invitation: InvitationResponse, user_data: dict):
        try:
            self.supabase.table("family_members").insert({
                "family_id": invitation.family_id,
                "user_id": user_data["id"],
                "email": invitation.email,
                "name": invitation.name or invitation.email.split("@")[0],
                "role": invitation.role,
                "joined_at": _now(),
            }).execute()
        except Exception as e:
            if not is_unique_violation(e):
                raise
            logger.info(f"User {user_data['id']} already belongs to family {invitation.family_id}")
        self.supabase.table("invitations")\
            .update({"status": "accepted"})\
            .eq("id", invitation.id)\
            .execute()

    def accept_invitation(self, invitation_id: str, user_data: dict) -> FamilyMemberResponse:
        """Join the invitation's family with the invited role"""
        invitation = self.get_invitation(invitation_id)
        self._check_addressee(invitation, user_data)
        try:
            try:
                accepted = call_rpc(self.supabase, "handle_invitation_accept", {
                    "invitation_id": invitation.id,
                    "user_id": user_data["id"],
                })
                if not accepted:
                    raise HTTPException(status_code=400, detail="Invitation could not be accepted")
            except HTTPException:
                raise
            except Exception as e:
                if not is_missing_function(e):
                    raise
                logger.warning("handle_invitation_accept unavailable, accepting with direct queries")
                self._accept_directly(invitation, user_data)

            member = self.supabase.table("family_members")\
                .select("*")\
                .eq("family_id", invitation.family_id)\
                .eq("user_id", user_data["id"])\
                .limit(1)\
                .execute()
            if not member.data:
                raise HTTPException(status_code=500, detail="Invitation accepted but membership not found")
        except HTTPException:
            raise
        except Exception as e:
            raise to_http_exception(e, "Accepting invitation")

        if invitation.invited_by:
            NotificationService(self.supabase).notify(
                invitation.invited_by,
                "Invitation accepted",
                f"{invitation.name or invitation.email} joined your family",
                notification_type="invitation_accepted",
                metadata={"family_id": invitation.family_id, "invitation_id": invitation.id},
                action_url=f"/families/{invitation.family_id}",
            )
        return FamilyMemberResponse(**member.data[0])

    def decline_invitation(self, invitation_id: str, user_data: dict) -> InvitationResponse:
        invitation = self.get_invitation(invitation_id)
        self._check_addressee(invitation, user_data)
        try:
            result = self.supabase.table("invitations")\
                .update({"status": "declined"})\
                .eq("id", invitation.id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Invitation not found")
            return InvitationResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise to_http_exception(e, "Declining invitation")
