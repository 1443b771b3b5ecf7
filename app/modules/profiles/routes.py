from fastapi import APIRouter, Depends, HTTPException
from app.database.supabase_client import get_user_supabase
from app.modules.profiles.schemas import ProfileResponse, ProfileUpdate
from app.modules.profiles.service import ProfileService
from app.core.dependencies import get_current_user, users_share_family
from supabase import Client
from typing import Dict

router = APIRouter(prefix="/profiles", tags=["profiles"])


def get_profile_service(supabase: Client = Depends(get_user_supabase)) -> ProfileService:
    return ProfileService(supabase)


@router.get("/me", response_model=ProfileResponse)
async def get_my_profile(
    current_user: Dict = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service)
):
    return service.get_profile(current_user["id"])


@router.put("/me", response_model=ProfileResponse)
async def update_my_profile(
    profile_data: ProfileUpdate,
    current_user: Dict = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service)
):
    return service.update_profile(current_user["id"], profile_data)


@router.get("/{user_id}", response_model=ProfileResponse)
async def get_profile(
    user_id: str,
    current_user: Dict = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service),
    supabase: Client = Depends(get_user_supabase)
):
    """Get a profile (self, or a user sharing at least one family)"""
    if not users_share_family(current_user["id"], user_id, supabase):
        raise HTTPException(status_code=403, detail="You can only view profiles of your family members")
    return service.get_profile(user_id)
