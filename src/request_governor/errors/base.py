"""错误基类：治理管道对调用方暴露的全部失败类型。

Base error classes for request-governor.

Every failure a governed request can end with is one of these:
- TimeoutError: an attempt exceeded its deadline
- AbortError: explicit or external cancellation
- JobCancelled: a queued job was removed from the scheduler
- RateLimitExceeded: the caller opted out of waiting for rate capacity
- UpstreamFailure: the operation reported a non-success outcome
- QueueCleared: a request waiting for rate capacity was discarded
- AllRequestsFailed: every request of a first-success batch failed
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ErrorContext:
    """Structured error context for diagnostics."""

    details: dict[str, Any] = field(default_factory=dict)
    """Additional details about the error"""

    source: str | None = None
    """Pipeline layer that produced the error (e.g., 'deadline', 'rate_window')"""

    hint: str | None = None
    """Actionable hint for resolving the error"""

    def __str__(self) -> str:
        parts = []
        if self.source:
            parts.append(f"[{self.source}]")
        if self.hint:
            parts.append(f"(hint: {self.hint})")
        return " ".join(parts)


class GovernorError(Exception):
    """Base class for all request-governor errors.

    Attributes:
        message: Human-readable error message
        context: Structured error context
    """

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
    ) -> None:
        self.message = message
        self.context = context or ErrorContext()
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        ctx_str = str(self.context)
        if ctx_str:
            return f"{self.message} {ctx_str}"
        return self.message

    def with_hint(self, hint: str) -> GovernorError:
        """Add a hint to this error."""
        self.context.hint = hint
        self.args = (self._format_message(),)
        return self


class TimeoutError(GovernorError):
    """An attempt did not settle before its deadline.

    Carries HTTP 408 as its status so that retry policies can treat a
    timeout like any other status-classified failure.
    """

    status_code: int = 408

    def __init__(
        self,
        timeout_ms: float,
        *,
        guard_id: str | None = None,
    ) -> None:
        ctx = ErrorContext(source="deadline")
        ctx.details["timeout_ms"] = timeout_ms
        if guard_id:
            ctx.details["guard_id"] = guard_id
        super().__init__(f"Request timeout after {timeout_ms:g}ms", ctx)
        self.timeout_ms = timeout_ms
        self.guard_id = guard_id


class AbortError(GovernorError):
    """Cancellation triggered for a reason other than the attempt's own deadline."""

    aborted = True

    def __init__(
        self,
        message: str = "Request aborted",
        context: ErrorContext | None = None,
        *,
        reason: str | None = None,
    ) -> None:
        ctx = context or ErrorContext(source="cancel")
        if reason:
            ctx.details["reason"] = reason
        super().__init__(message, ctx)
        self.reason = reason


class JobCancelled(AbortError):
    """A queued job was cancelled before it started running."""

    def __init__(self, job_id: str) -> None:
        ctx = ErrorContext(source="scheduler", details={"job_id": job_id})
        super().__init__("Request cancelled", ctx, reason="cancelled")
        self.job_id = job_id


class RateLimitExceeded(GovernorError):
    """Rate capacity was exhausted and the caller chose not to wait."""

    status_code: int = 429

    def __init__(self, wait_time: float) -> None:
        ctx = ErrorContext(source="rate_window")
        ctx.details["wait_time"] = wait_time
        super().__init__(
            f"Rate limit exceeded, next slot in {wait_time * 1000:.0f}ms", ctx
        )
        self.wait_time = wait_time


class UpstreamFailure(GovernorError):
    """The operation reported a non-success outcome.

    Attributes:
        status_code: Status reported by the upstream, if any
        body: Decoded response body, if any
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: Any = None,
        url: str | None = None,
    ) -> None:
        ctx = ErrorContext(source="upstream")
        if status_code is not None:
            ctx.details["status_code"] = status_code
        if url:
            ctx.details["url"] = url
        super().__init__(message, ctx)
        self.status_code = status_code
        self.body = body
        self.url = url


class QueueCleared(GovernorError):
    """A request waiting for rate capacity was discarded by a bulk clear."""

    def __init__(self) -> None:
        super().__init__("Queue cleared", ErrorContext(source="rate_window"))


class AllRequestsFailed(GovernorError):
    """Every request in a first-success batch failed.

    Attributes:
        errors: The failure of each request, in request order
    """

    def __init__(self, errors: list[BaseException]) -> None:
        ctx = ErrorContext(source="batch", details={"count": len(errors)})
        super().__init__("All requests failed", ctx)
        self.errors = errors
