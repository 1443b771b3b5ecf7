"""
Core dependencies for route protection and family membership checks
"""

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials
from app.database.supabase_client import get_supabase, security
from app.modules.auth.service import AuthService
from app.core.resilience import call_rpc, with_fallback
from supabase import Client
from typing import List, Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def get_current_token(
    credentials: HTTPAuthorizationCredentials = Security(security)
) -> str:
    """Extract JWT token from Authorization header"""
    return credentials.credentials


def get_current_user(
    token: str = Depends(get_current_token),
    auth_service: AuthService = Depends(get_auth_service)
) -> dict:
    """Extract current user info from JWT token"""
    return auth_service.get_current_user(token)


def get_user_family_ids(user_id: str, supabase: Client, cache: Optional[Dict[str, Any]] = None) -> List[str]:
    """Return ids of the families the user belongs to. Uses the given cache dict when provided."""
    if cache is not None and "family_ids" in cache:
        return cache["family_ids"]

    def via_rpc():
        rows = call_rpc(supabase, "user_families") or []
        return [row["family_id"] for row in rows]

    def via_table():
        result = supabase.table("family_members")\
            .select("family_id")\
            .eq("user_id", user_id)\
            .execute()
        return [row["family_id"] for row in result.data or []]

    ids = list(dict.fromkeys(with_fallback("Fetching user families", via_rpc, via_table)))
    if cache is not None:
        cache["family_ids"] = ids
    return ids


def _membership_role(family_id: str, user_id: str, supabase: Client) -> Optional[str]:
    result = supabase.table("family_members")\
        .select("role")\
        .eq("family_id", family_id)\
        .eq("user_id", user_id)\
        .limit(1)\
        .execute()
    if not result.data:
        return None
    return result.data[0]["role"]


def is_family_member(family_id: str, user_id: str, supabase: Client) -> bool:
    return bool(with_fallback(
        "Checking family membership",
        lambda: call_rpc(supabase, "safe_is_family_member", {"p_family_id": family_id}),
        lambda: _membership_role(family_id, user_id, supabase) is not None,
    ))


def is_family_admin(family_id: str, user_id: str, supabase: Client) -> bool:
    return bool(with_fallback(
        "Checking family admin",
        lambda: call_rpc(supabase, "safe_is_family_admin", {"p_family_id": family_id}),
        lambda: _membership_role(family_id, user_id, supabase) == "admin",
    ))


def check_family_member(family_id: str, user_data: dict, supabase: Client) -> dict:
    """Raise 403 unless the user is a member of the family"""
    if is_family_member(family_id, user_data["id"], supabase):
        return user_data
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You must be a member of this family"
    )


def check_family_admin(family_id: str, user_data: dict, supabase: Client) -> dict:
    """Raise 403 unless the user is an admin of the family"""
    if is_family_admin(family_id, user_data["id"], supabase):
        return user_data
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You must be a family admin to perform this action"
    )


def users_share_family(current_user_id: str, target_user_id: str, supabase: Client) -> bool:
    """True if target is self or belongs to at least one of the current user's families"""
    if current_user_id == target_user_id:
        return True
    my_family_ids = get_user_family_ids(current_user_id, supabase)
    if not my_family_ids:
        return False
    member_result = supabase.table("family_members")\
        .select("id")\
        .eq("user_id", target_user_id)\
        .in_("family_id", my_family_ids)\
        .limit(1)\
        .execute()
    return bool(member_result.data)
