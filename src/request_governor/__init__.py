"""异步请求治理库：为任意异步操作提供优先级调度、限流、重试与超时控制。

request-governor: Resilience orchestration for async operations.

Every governed request passes through a priority scheduler, a sliding-window
rate limiter, a retry policy and a per-attempt deadline, in that order.
"""
from __future__ import annotations

from request_governor.batch import BatchResult, Settled, SettledStatus
from request_governor.client import (
    CancelReason,
    CancelToken,
    Operation,
    Orchestrator,
    Request,
    RequestOptions,
)
from request_governor.config import GovernorConfig
from request_governor.errors import (
    AbortError,
    AllRequestsFailed,
    GovernorError,
    GovernorTimeoutError,
    QueueCleared,
    RateLimitExceeded,
    UpstreamFailure,
)
from request_governor.telemetry import MetricsSnapshot
from request_governor.transport import GovernedHttpClient, HttpTransport
from request_governor.types.events import LifecycleEvent

__version__ = "0.1.0"

__all__ = [
    # Errors
    "AbortError",
    "AllRequestsFailed",
    # Batch
    "BatchResult",
    # Cancellation
    "CancelReason",
    "CancelToken",
    # HTTP
    "GovernedHttpClient",
    # Config
    "GovernorConfig",
    "GovernorError",
    "GovernorTimeoutError",
    "HttpTransport",
    # Events
    "LifecycleEvent",
    "MetricsSnapshot",
    # Client
    "Operation",
    "Orchestrator",
    "QueueCleared",
    "RateLimitExceeded",
    "Request",
    "RequestOptions",
    "Settled",
    "SettledStatus",
    "UpstreamFailure",
    # Version
    "__version__",
]
