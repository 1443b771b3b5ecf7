"""
RPC-with-fallback helpers for reads that RLS policies can break.

Family and event lookups go through SECURITY DEFINER RPC functions first
because the row-level policies on family_members recurse. When an RPC is
missing or errors out, the same data is fetched with direct table queries,
and when a whole chain fails on a transient error it is retried with
exponential backoff.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional, TypeVar

from supabase import Client
from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from app.config import settings
from app.core.errors import is_recoverable_error, to_http_exception

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_rpc(client: Client, function_name: str, params: Optional[Dict[str, Any]] = None) -> Any:
    """Execute an RPC function and return its data."""
    try:
        result = client.rpc(function_name, params or {}).execute()
    except Exception as e:
        logger.warning(f"RPC {function_name} failed: {e}")
        raise
    return result.data


def with_fallback(context: str, primary: Callable[[], T], *fallbacks: Callable[[], T]) -> T:
    """Run primary, then each fallback in order until one succeeds.

    The last error is raised as an HTTPException when every attempt fails.
    """
    attempts = (primary,) + fallbacks
    last_error: Optional[Exception] = None
    for index, attempt in enumerate(attempts):
        try:
            return attempt()
        except Exception as e:
            last_error = e
            if index + 1 < len(attempts):
                logger.warning(
                    f"{context}: attempt {index + 1}/{len(attempts)} failed ({e}), falling back"
                )
    http_error = to_http_exception(last_error, context)
    if http_error is last_error:
        raise http_error
    raise http_error from last_error


def with_retry(
    context: str,
    fn: Callable[[], T],
    max_retries: Optional[int] = None,
    base_delay: Optional[float] = None,
    should_retry: Optional[Callable[[Exception], bool]] = None,
) -> T:
    """Call fn, retrying recoverable errors with exponential backoff.

    HTTPExceptions carry the error wrapped by with_fallback; the original is
    kept on ``__cause__`` and decides whether a retry can help.
    """
    retries = settings.rpc_max_retries if max_retries is None else max_retries
    delay = settings.rpc_retry_base_delay if base_delay is None else base_delay
    can_retry = should_retry or is_recoverable_error

    def log_retry(retry_state: RetryCallState):
        error = retry_state.outcome.exception()
        logger.warning(
            f"{context}: recoverable error ({error.__cause__ or error}), "
            f"retry {retry_state.attempt_number}/{retries} in {retry_state.next_action.sleep:.2f}s"
        )

    retrying = Retrying(
        retry=retry_if_exception(lambda e: can_retry(e.__cause__ or e)),
        stop=stop_after_attempt(retries + 1),
        wait=wait_exponential(multiplier=delay, exp_base=2),
        sleep=time.sleep,
        before_sleep=log_retry,
        reraise=True,
    )
    return retrying(fn)
