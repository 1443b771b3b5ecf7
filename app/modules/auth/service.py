import hashlib
import logging
import time
from supabase import Client
from app.modules.auth.schemas import (
    LoginRequest, RegisterRequest, TokenResponse, RegisterResponse, SessionValidationResponse
)
from app.core.errors import error_message
from app.core.resilience import call_rpc, with_retry
from fastapi import HTTPException
from typing import Dict, Any, Optional, Tuple

logger = logging.getLogger(__name__)

# Resolved users keyed by token hash; every family/event request resolves the caller first
_USER_CACHE: Dict[str, Tuple[Dict[str, Any], float]] = {}
USER_CACHE_TTL_SEC = 60
USER_CACHE_MAX_SIZE = 500

# Any RPC works as a probe; this one is cheap and granted to authenticated users.
SESSION_PROBE_FUNCTION = "get_user_accessible_events_safe"

DUPLICATE_USER_MARKERS = ("already registered", "already exists")
BAD_TOKEN_MARKERS = ("jwt", "expired", "invalid")


def clear_auth_cache():
    _USER_CACHE.clear()


def _token_key(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def _cached_user(token: str) -> Optional[Dict[str, Any]]:
    entry = _USER_CACHE.get(_token_key(token))
    if entry is None:
        return None
    user_data, expiry = entry
    if time.monotonic() >= expiry:
        _USER_CACHE.pop(_token_key(token), None)
        return None
    return user_data


def _remember_user(token: str, user_data: Dict[str, Any]):
    if len(_USER_CACHE) >= USER_CACHE_MAX_SIZE:
        return
    _USER_CACHE[_token_key(token)] = (user_data, time.monotonic() + USER_CACHE_TTL_SEC)


def _user_to_dict(user) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "user_metadata": user.user_metadata or {},
        "app_metadata": user.app_metadata or {},
        "created_at": user.created_at,
        "updated_at": user.updated_at,
    }


class AuthService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def register(self, register_data: RegisterRequest) -> RegisterResponse:
        """Sign up; the profile row is created from the full_name metadata by a database trigger"""
        metadata = {}
        full_name = (register_data.full_name or "").strip()
        if full_name:
            metadata["full_name"] = full_name

        try:
            response = self.supabase.auth.sign_up({
                "email": register_data.email,
                "password": register_data.password,
                "options": {"data": metadata},
            })
        except Exception as e:
            message = error_message(e)
            if any(marker in message.lower() for marker in DUPLICATE_USER_MARKERS):
                raise HTTPException(status_code=400, detail="User already exists")
            logger.error(f"Registration failed for {register_data.email}: {message}")
            raise HTTPException(status_code=500, detail=f"Registration failed: {message}")

        if not response.user:
            raise HTTPException(status_code=400, detail="Failed to register user")
        logger.info(f"Registered user {response.user.id}")
        return RegisterResponse(
            user_id=response.user.id,
            email=response.user.email or register_data.email,
            message="User registered successfully",
        )

    def login(self, login_data: LoginRequest) -> TokenResponse:
        try:
            response = self.supabase.auth.sign_in_with_password({
                "email": login_data.email,
                "password": login_data.password,
            })
        except Exception as e:
            message = error_message(e)
            if "invalid" in message.lower() or "credentials" in message.lower():
                raise HTTPException(status_code=401, detail="Invalid email or password")
            raise HTTPException(status_code=500, detail=f"Login failed: {message}")

        if not response.user or not response.session:
            raise HTTPException(status_code=401, detail="Invalid credentials")
        session = response.session
        return TokenResponse(
            access_token=session.access_token,
            refresh_token=getattr(session, "refresh_token", None),
            expires_in=getattr(session, "expires_in", None),
            user_id=response.user.id,
            email=response.user.email or login_data.email,
        )

    def get_current_user(self, token: str) -> Dict[str, Any]:
        """Resolve the caller from a bearer token, cached for a short while"""
        user_data = _cached_user(token)
        if user_data is not None:
            return user_data

        try:
            response = self.supabase.auth.get_user(jwt=token)
        except Exception as e:
            message = error_message(e).lower()
            if any(marker in message for marker in BAD_TOKEN_MARKERS):
                raise HTTPException(status_code=401, detail="Invalid or expired token")
            logger.warning(f"Token lookup failed: {message}")
            raise HTTPException(status_code=401, detail="Authentication failed")

        if not response or not response.user:
            raise HTTPException(status_code=401, detail="Invalid or expired token")
        user_data = _user_to_dict(response.user)
        _remember_user(token, user_data)
        return user_data

    def logout(self, token: str) -> bool:
        # Access tokens stay valid until expiry; the cache entry is what this server trusts
        _USER_CACHE.pop(_token_key(token), None)
        try:
            self.supabase.auth.sign_out()
            return True
        except Exception as e:
            logger.warning(f"Sign out failed: {e}")
            return False

    def validate_session(self, token: str, user_client: Client) -> SessionValidationResponse:
        """Check that the token is accepted both by Supabase Auth and by PostgREST.

        Right after sign-in PostgREST can still reject a fresh JWT; those
        failures are retried with exponential backoff.
        """
        try:
            user_data = self.get_current_user(token)
        except HTTPException as e:
            return SessionValidationResponse(valid=False, error=str(e.detail))

        attempts = {"count": 0}

        def probe():
            attempts["count"] += 1
            return call_rpc(user_client, "function_exists", {"function_name": SESSION_PROBE_FUNCTION})

        try:
            with_retry(
                "Validating session",
                probe,
                should_retry=lambda e: "JWT" in error_message(e),
            )
        except Exception as e:
            return SessionValidationResponse(
                valid=False,
                user_id=user_data["id"],
                error=f"Session validation error: {error_message(e)}",
                attempts=attempts["count"],
            )
        return SessionValidationResponse(valid=True, user_id=user_data["id"], attempts=attempts["count"])
