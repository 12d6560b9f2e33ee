"""Retry wrapper for transient Qdrant failures.

Connection errors, timeouts and unexpected server responses are retried
with exponential backoff; everything else propagates immediately.
"""

from __future__ import annotations

import logging

import httpx
from qdrant_client.http.exceptions import UnexpectedResponse
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (httpx.ConnectError, httpx.TimeoutException, UnexpectedResponse)


def _before_sleep(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    logger.warning(
        "Qdrant call %s failed (attempt %d), retrying: %s",
        retry_state.fn.__name__ if retry_state.fn else "unknown",
        retry_state.attempt_number,
        outcome.exception() if outcome else None,
    )


qdrant_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
    retry=retry_if_exception_type(TRANSIENT_ERRORS),
    before_sleep=_before_sleep,
    reraise=True,
)

__all__ = ["TRANSIENT_ERRORS", "qdrant_retry"]
