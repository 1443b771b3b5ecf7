"""
Mapping of Supabase/PostgREST errors to HTTP errors.

PostgREST surfaces Postgres error codes on ``APIError.code``; the ones the
family and event services run into are mapped to a status code, a message
that can be shown to a user, and whether retrying the call can help.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException
from postgrest.exceptions import APIError

from app.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ErrorDefinition:
    status_code: int
    message: str
    recoverable: bool


ERROR_MAP = {
    "23505": ErrorDefinition(409, "This record already exists.", True),
    "23503": ErrorDefinition(400, "This action references data that doesn't exist.", False),
    "42P01": ErrorDefinition(500, "The requested data structure doesn't exist.", False),
    "42501": ErrorDefinition(403, "You don't have permission to perform this action.", False),
    "42P17": ErrorDefinition(503, "There was a problem with the database security policy.", True),
    "PGRST116": ErrorDefinition(404, "Record not found.", False),
}

RECURSION_MESSAGE = "The database security policy encountered a recursive issue."

_TRANSIENT_MARKERS = ("infinite recursion", "maximum stack depth exceeded", "network", "connection", "timed out")


def error_code(error: Exception) -> str:
    if isinstance(error, APIError):
        return error.code or ""
    return getattr(error, "code", "") or ""


def error_message(error: Exception) -> str:
    if isinstance(error, APIError):
        return error.message or str(error)
    if isinstance(error, HTTPException):
        return str(error.detail)
    return str(error)


def is_unique_violation(error: Exception) -> bool:
    return error_code(error) == "23505" or "duplicate key value violates unique constraint" in error_message(error)


def is_missing_function(error: Exception) -> bool:
    """True when PostgREST could not find the RPC function (migration not applied)."""
    message = error_message(error)
    return (
        error_code(error) in ("PGRST202", "42883")
        or "Could not find the function" in message
        or ("function" in message and "does not exist" in message)
    )


def is_recoverable_error(error: Optional[Exception]) -> bool:
    """True when retrying the same call has a chance of succeeding."""
    if error is None or isinstance(error, HTTPException):
        return False
    definition = ERROR_MAP.get(error_code(error))
    if definition:
        return definition.recoverable
    message = error_message(error).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


def to_http_exception(error: Exception, context: str = "operation") -> HTTPException:
    """Convert any error raised by a Supabase call into an HTTPException."""
    if isinstance(error, HTTPException):
        return error

    code = error_code(error)
    message = error_message(error)
    definition = ERROR_MAP.get(code)

    if "infinite recursion" in message:
        status_code, detail = 503, RECURSION_MESSAGE
    elif definition:
        status_code, detail = definition.status_code, definition.message
    else:
        status_code = 500
        detail = "An unexpected database error occurred." if settings.is_production else message

    logger.error(f"Database error in {context}: code={code or 'n/a'} message={message}")
    return HTTPException(status_code=status_code, detail=f"{context}: {detail}")
