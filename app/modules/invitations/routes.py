from fastapi import APIRouter, Depends
from app.database.supabase_client import get_user_supabase
from app.modules.families.schemas import FamilyMemberResponse
from app.modules.invitations.schemas import InvitationCreate, InvitationResponse
from app.modules.invitations.service import InvitationService
from app.core.dependencies import get_current_user, check_family_admin, check_family_member
from supabase import Client
from typing import List, Dict

router = APIRouter(tags=["invitations"])


def get_invitation_service(supabase: Client = Depends(get_user_supabase)) -> InvitationService:
    return InvitationService(supabase)


@router.post("/families/{family_id}/invitations", response_model=InvitationResponse, status_code=201)
async def invite_member(
    family_id: str,
    invitation_data: InvitationCreate,
    current_user: Dict = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
    supabase: Client = Depends(get_user_supabase)
):
    """Invite someone to the family (family admin only)"""
    check_family_admin(family_id, current_user, supabase)
    return service.invite_member(family_id, invitation_data, current_user)


@router.get("/families/{family_id}/invitations", response_model=List[InvitationResponse])
async def list_family_invitations(
    family_id: str,
    current_user: Dict = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
    supabase: Client = Depends(get_user_supabase)
):
    """Pending invitations of a family (members only)"""
    check_family_member(family_id, current_user, supabase)
    return service.list_family_invitations(family_id)


@router.get("/invitations", response_model=List[InvitationResponse])
async def list_my_invitations(
    current_user: Dict = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service)
):
    """Pending invitations addressed to the current user's email"""
    return service.list_for_email(current_user.get("email"))


@router.post("/invitations/{invitation_id}/resend", response_model=InvitationResponse)
async def resend_invitation(
    invitation_id: str,
    current_user: Dict = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
    supabase: Client = Depends(get_user_supabase)
):
    """Resend an invitation (admin of the invitation's family)"""
    invitation = service.get_invitation(invitation_id)
    check_family_admin(invitation.family_id, current_user, supabase)
    return service.resend_invitation(invitation_id)


@router.post("/invitations/{invitation_id}/accept", response_model=FamilyMemberResponse)
async def accept_invitation(
    invitation_id: str,
    current_user: Dict = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service)
):
    """Join the family the invitation is for"""
    return service.accept_invitation(invitation_id, current_user)


@router.post("/invitations/{invitation_id}/decline", response_model=InvitationResponse)
async def decline_invitation(
    invitation_id: str,
    current_user: Dict = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service)
):
    return service.decline_invitation(invitation_id, current_user)
