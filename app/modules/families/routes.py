from fastapi import APIRouter, Depends, HTTPException
from app.database.supabase_client import get_user_supabase
from app.modules.families.schemas import (
    FamilyCreate, FamilyUpdate, FamilyResponse, FamilyCreateResponse,
    FamilyMemberResponse, FamilyMemberUpdate,
    EmailPreferencesUpdate, EmailPreferencesResponse
)
from app.modules.families.service import FamilyService
from app.core.dependencies import get_current_user, check_family_admin, check_family_member, is_family_admin
from supabase import Client
from typing import List, Dict

router = APIRouter(prefix="/families", tags=["families"])


def get_family_service(supabase: Client = Depends(get_user_supabase)) -> FamilyService:
    return FamilyService(supabase)


@router.get("", response_model=List[FamilyResponse])
async def list_families(
    current_user: Dict = Depends(get_current_user),
    service: FamilyService = Depends(get_family_service)
):
    """List families the current user belongs to"""
    return service.list_families(current_user["id"])


@router.post("", response_model=FamilyCreateResponse, status_code=201)
async def create_family(
    family_data: FamilyCreate,
    current_user: Dict = Depends(get_current_user),
    service: FamilyService = Depends(get_family_service)
):
    """Create a family with the current user as admin and invite the listed members"""
    return service.create_family(family_data, current_user)


@router.get("/{family_id}", response_model=FamilyResponse)
async def get_family(
    family_id: str,
    current_user: Dict = Depends(get_current_user),
    service: FamilyService = Depends(get_family_service),
    supabase: Client = Depends(get_user_supabase)
):
    """Get family by ID (only if user is a member)"""
    check_family_member(family_id, current_user, supabase)
    return service.get_family(family_id)


@router.put("/{family_id}", response_model=FamilyResponse)
async def update_family(
    family_id: str,
    family_data: FamilyUpdate,
    current_user: Dict = Depends(get_current_user),
    service: FamilyService = Depends(get_family_service),
    supabase: Client = Depends(get_user_supabase)
):
    """Update family (family admin only)"""
    check_family_admin(family_id, current_user, supabase)
    return service.update_family(family_id, family_data)


@router.delete("/{family_id}", status_code=204)
async def delete_family(
    family_id: str,
    current_user: Dict = Depends(get_current_user),
    service: FamilyService = Depends(get_family_service),
    supabase: Client = Depends(get_user_supabase)
):
    """Delete family (family admin only)"""
    check_family_admin(family_id, current_user, supabase)
    service.delete_family(family_id)
    return None


# Members

@router.get("/{family_id}/members", response_model=List[FamilyMemberResponse])
async def list_members(
    family_id: str,
    current_user: Dict = Depends(get_current_user),
    service: FamilyService = Depends(get_family_service),
    supabase: Client = Depends(get_user_supabase)
):
    """List family members (only if user is a member)"""
    check_family_member(family_id, current_user, supabase)
    return service.list_members(family_id)


@router.put("/{family_id}/members/{member_id}", response_model=FamilyMemberResponse)
async def update_member_role(
    family_id: str,
    member_id: str,
    member_data: FamilyMemberUpdate,
    current_user: Dict = Depends(get_current_user),
    service: FamilyService = Depends(get_family_service),
    supabase: Client = Depends(get_user_supabase)
):
    """Change a member's role (family admin only)"""
    check_family_admin(family_id, current_user, supabase)
    return service.update_member_role(family_id, member_id, member_data.role)


@router.delete("/{family_id}/members/{member_id}", status_code=204)
async def remove_member(
    family_id: str,
    member_id: str,
    current_user: Dict = Depends(get_current_user),
    service: FamilyService = Depends(get_family_service),
    supabase: Client = Depends(get_user_supabase)
):
    """Remove a member (family admin, or the member leaving the family)"""
    check_family_member(family_id, current_user, supabase)
    member = service.get_member(family_id, member_id)
    if member.user_id != current_user["id"] and not is_family_admin(family_id, current_user["id"], supabase):
        raise HTTPException(status_code=403, detail="You must be a family admin to perform this action")
    service.remove_member(family_id, member_id)
    return None


# Email preferences

@router.get("/{family_id}/email-preferences", response_model=EmailPreferencesResponse)
async def get_email_preferences(
    family_id: str,
    current_user: Dict = Depends(get_current_user),
    service: FamilyService = Depends(get_family_service),
    supabase: Client = Depends(get_user_supabase)
):
    check_family_member(family_id, current_user, supabase)
    return service.get_email_preferences(family_id)


@router.put("/{family_id}/email-preferences", response_model=EmailPreferencesResponse)
async def update_email_preferences(
    family_id: str,
    preferences: EmailPreferencesUpdate,
    current_user: Dict = Depends(get_current_user),
    service: FamilyService = Depends(get_family_service),
    supabase: Client = Depends(get_user_supabase)
):
    """Update reminder and summary email settings (family admin only)"""
    check_family_admin(family_id, current_user, supabase)
    return service.update_email_preferences(family_id, preferences)
