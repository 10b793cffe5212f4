"""
Type definitions for request-governor.
"""

from request_governor.types.events import (
    BatchComplete,
    BatchStart,
    CancelAll,
    LifecycleEvent,
    MetricsReset,
    MetricsUpdate,
    RequestAttempt,
    RequestError,
    RequestRetry,
    RequestStart,
    RequestSuccess,
    parse_event,
)

__all__ = [
    "BatchComplete",
    "BatchStart",
    "CancelAll",
    "LifecycleEvent",
    "MetricsReset",
    "MetricsUpdate",
    "RequestAttempt",
    "RequestError",
    "RequestRetry",
    "RequestStart",
    "RequestSuccess",
    "parse_event",
]
