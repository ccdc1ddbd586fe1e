"""
HTTP retry policy
jobmap/services/http_retry.py

Bounded exponential backoff for calls to external services. 429 responses
wait for the server's Retry-After hint when it sends one.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
)

from jobmap.config import settings

logger = logging.getLogger(__name__)

MAX_RETRY_WAIT_SECONDS = 60.0


def is_retryable(exc: BaseException) -> bool:
    """Timeouts, connection errors, 429 and 5xx are transient; other statuses are not."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, httpx.TransportError)


def retry_after_seconds(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        # HTTP-date form is not worth parsing here; fall back to backoff
        return None


class wait_retry_after_or_exponential:
    """tenacity wait strategy: Retry-After on 429, else base * 2**(attempt-1)."""

    def __init__(self, base_delay: float):
        self.base_delay = base_delay

    def __call__(self, retry_state: RetryCallState) -> float:
        delay = self.base_delay * (2 ** (retry_state.attempt_number - 1))
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code == 429:
            hinted = retry_after_seconds(exc.response)
            if hinted is not None:
                delay = hinted
        return min(delay, MAX_RETRY_WAIT_SECONDS)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    logger.warning(
        f"   ⏳ Retrying in {wait:.1f}s (attempt {retry_state.attempt_number}): {exc}"
    )


def _policy(max_attempts: Optional[int], base_delay: Optional[float]) -> dict:
    return dict(
        stop=stop_after_attempt(max_attempts or settings.API_MAX_RETRIES),
        wait=wait_retry_after_or_exponential(
            settings.API_RETRY_BASE_DELAY if base_delay is None else base_delay
        ),
        retry=retry_if_exception(is_retryable),
        before_sleep=_log_retry,
        reraise=True,
    )


def retrying(max_attempts: Optional[int] = None, base_delay: Optional[float] = None) -> Retrying:
    return Retrying(**_policy(max_attempts, base_delay))


def async_retrying(
    max_attempts: Optional[int] = None, base_delay: Optional[float] = None
) -> AsyncRetrying:
    return AsyncRetrying(**_policy(max_attempts, base_delay))
