"""
Resilience layer - scheduling, rate admission, retry and deadlines.

This module provides the four policies a governed request passes through:
- PriorityScheduler: Bounded concurrency ordered by priority, then arrival
- RateWindow: Sliding-window admission with a priority-ordered wait list
- RetryPolicy: Exponential backoff with proportional jitter
- DeadlineGuard: Per-attempt deadline with manual abort
- CancelToken: Cooperative cancellation signal handed to each attempt
"""

from request_governor.resilience.cancel import CancelReason, CancelState, CancelToken
from request_governor.resilience.deadline import (
    DeadlineConfig,
    DeadlineGuard,
    DeadlineHandle,
)
from request_governor.resilience.rate_window import RateWindow, RateWindowConfig
from request_governor.resilience.retry import (
    RetryAttempt,
    RetryConfig,
    RetryPolicy,
    RetryResult,
    with_retry,
)
from request_governor.resilience.scheduler import (
    Job,
    JobStatus,
    PriorityScheduler,
    SchedulerConfig,
)
from request_governor.resilience.signals import (
    DeadlineSnapshot,
    RateWindowSnapshot,
    SchedulerSnapshot,
)

__all__ = [
    # Cancellation
    "CancelReason",
    "CancelState",
    "CancelToken",
    # Deadline
    "DeadlineConfig",
    "DeadlineGuard",
    "DeadlineHandle",
    # Signals
    "DeadlineSnapshot",
    # Scheduler
    "Job",
    "JobStatus",
    "PriorityScheduler",
    # Rate window
    "RateWindow",
    "RateWindowConfig",
    "RateWindowSnapshot",
    # Retry
    "RetryAttempt",
    "RetryConfig",
    "RetryPolicy",
    "RetryResult",
    "SchedulerConfig",
    "SchedulerSnapshot",
    "with_retry",
]
