from fastapi import APIRouter, Depends
from app.database.supabase_client import get_user_supabase
from app.modules.auth.schemas import (
    LoginRequest, RegisterRequest, TokenResponse, RegisterResponse,
    CurrentUserResponse, MembershipSummary, SessionValidationResponse
)
from app.modules.auth.service import AuthService
from app.modules.families.service import FamilyService
from app.core.dependencies import get_auth_service, get_current_token, get_current_user
from supabase import Client
from typing import Dict

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    register_data: RegisterRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Register a new user"""
    return service.register(register_data)


@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: LoginRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Login and get access token"""
    return service.login(login_data)


@router.post("/logout", status_code=200)
async def logout(
    token: str = Depends(get_current_token),
    service: AuthService = Depends(get_auth_service)
):
    """Logout and invalidate token"""
    service.logout(token)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=CurrentUserResponse)
async def get_me(
    current_user: Dict = Depends(get_current_user),
    supabase: Client = Depends(get_user_supabase),
):
    """Current user with the families they belong to and their role in each"""
    memberships = FamilyService(supabase).list_memberships(current_user["id"])
    return CurrentUserResponse(
        id=current_user["id"],
        email=current_user.get("email"),
        user_metadata=current_user.get("user_metadata") or {},
        families=[MembershipSummary(**membership) for membership in memberships],
    )


@router.get("/session", response_model=SessionValidationResponse)
async def validate_session(
    token: str = Depends(get_current_token),
    service: AuthService = Depends(get_auth_service),
    supabase: Client = Depends(get_user_supabase),
):
    """Check that the session is usable for database calls, not only for auth"""
    return service.validate_session(token, supabase)
