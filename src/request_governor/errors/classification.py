"""
Error classification for retry and reporting decisions.

Maps arbitrary exceptions raised by operations onto the small set of
error kinds the pipeline reasons about.
"""

from __future__ import annotations

import asyncio
from enum import Enum

import httpx

from request_governor.errors.base import (
    AbortError,
    QueueCleared,
    RateLimitExceeded,
    TimeoutError,
    UpstreamFailure,
)

# Statuses retried by default
DEFAULT_RETRYABLE_STATUSES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})


class ErrorKind(str, Enum):
    """Classification of a terminal request failure."""

    TIMEOUT = "timeout"
    """Attempt exceeded its deadline."""

    ABORTED = "aborted"
    """Cancelled explicitly or by an upstream abort."""

    RATE_LIMITED = "rate_limited"
    """Caller opted out of waiting for rate capacity."""

    UPSTREAM = "upstream"
    """Operation reported a failure status."""

    QUEUE_CLEARED = "queue_cleared"
    """Waiting request discarded by a bulk clear."""

    OTHER = "other"
    """Anything else raised by the operation."""


def status_of(error: BaseException) -> int | None:
    """Extract the status code carried by an error, if any.

    Looks at ``status_code``, then ``status``, then an attached
    ``response.status_code`` (as on ``httpx.HTTPStatusError``).
    """
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value

    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code

    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def is_aborted(error: BaseException) -> bool:
    """Check whether an error was caused by explicit cancellation."""
    if isinstance(error, AbortError):
        return True
    return getattr(error, "aborted", False) is True


def is_retryable_status(
    error: BaseException,
    retryable_statuses: frozenset[int] | set[int] = DEFAULT_RETRYABLE_STATUSES,
) -> bool:
    """Check if an error is retryable under a status set.

    Cancellation is never retryable, regardless of status.
    """
    if is_aborted(error):
        return False
    return status_of(error) in retryable_statuses


def classify_error(error: BaseException) -> ErrorKind:
    """Classify an error into an ErrorKind."""
    if isinstance(error, TimeoutError):
        return ErrorKind.TIMEOUT
    if is_aborted(error) or isinstance(error, asyncio.CancelledError):
        return ErrorKind.ABORTED
    if isinstance(error, RateLimitExceeded):
        return ErrorKind.RATE_LIMITED
    if isinstance(error, QueueCleared):
        return ErrorKind.QUEUE_CLEARED
    if isinstance(error, UpstreamFailure) or status_of(error) is not None:
        return ErrorKind.UPSTREAM
    return ErrorKind.OTHER
