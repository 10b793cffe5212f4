"""错误体系：治理管道的结构化错误类型与分类。

Error hierarchy for request-governor.
"""

from request_governor.errors.base import (
    AbortError,
    AllRequestsFailed,
    ErrorContext,
    GovernorError,
    JobCancelled,
    QueueCleared,
    RateLimitExceeded,
    UpstreamFailure,
)
from request_governor.errors.base import (
    TimeoutError as GovernorTimeoutError,
)
from request_governor.errors.classification import (
    DEFAULT_RETRYABLE_STATUSES,
    ErrorKind,
    classify_error,
    is_aborted,
    is_retryable_status,
    status_of,
)

__all__ = [
    "DEFAULT_RETRYABLE_STATUSES",
    # Base errors
    "AbortError",
    "AllRequestsFailed",
    "ErrorContext",
    # Classification
    "ErrorKind",
    "GovernorError",
    "GovernorTimeoutError",
    "JobCancelled",
    "QueueCleared",
    "RateLimitExceeded",
    "UpstreamFailure",
    "classify_error",
    "is_aborted",
    "is_retryable_status",
    "status_of",
]
