"""
Lifecycle notifications emitted by the orchestrator.

Each event is a pydantic model tagged by ``kind``; ``LifecycleEvent`` is the
discriminated union of all of them.

Example:
    >>> def observer(event: LifecycleEvent) -> None:
    ...     match event.kind:
    ...         case "request_success":
    ...             print(f"{event.request_id} took {event.latency_ms}ms")
    ...         case "request_error":
    ...             print(f"{event.request_id} failed: {event.message}")
"""

from __future__ import annotations

import time
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: float = Field(default_factory=time.time, description="Emission time (epoch seconds)")


class RequestStart(_Event):
    """A request entered the pipeline."""

    kind: Literal["request_start"] = "request_start"
    request_id: str
    priority: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)


class RequestAttempt(_Event):
    """One attempt of a request is about to run."""

    kind: Literal["request_attempt"] = "request_attempt"
    request_id: str
    attempt: int = Field(description="Attempt index (0-based)")


class RequestRetry(_Event):
    """An attempt failed and another will follow after a delay."""

    kind: Literal["request_retry"] = "request_retry"
    request_id: str
    attempt: int = Field(description="Index of the attempt that failed")
    delay_ms: float
    error: str


class RequestSuccess(_Event):
    """A request resolved with a result."""

    kind: Literal["request_success"] = "request_success"
    request_id: str
    latency_ms: float
    attempts: int = 1


class RequestError(_Event):
    """A request reached its terminal failure."""

    kind: Literal["request_error"] = "request_error"
    request_id: str
    message: str
    error_kind: str
    latency_ms: float


class BatchStart(_Event):
    """A batch combinator started."""

    kind: Literal["batch_start"] = "batch_start"
    batch_type: str
    count: int


class BatchComplete(_Event):
    """A batch combinator produced its outcome."""

    kind: Literal["batch_complete"] = "batch_complete"
    batch_type: str
    total: int
    successful: int
    failed: int


class MetricsUpdate(_Event):
    """Metrics changed after a request settled."""

    kind: Literal["metrics_update"] = "metrics_update"
    snapshot: dict[str, Any]


class CancelAll(_Event):
    """Every in-flight, queued and waiting request was cancelled."""

    kind: Literal["cancel_all"] = "cancel_all"
    aborted: int
    cancelled: int
    cleared: int


class MetricsReset(_Event):
    """Metrics were reset."""

    kind: Literal["metrics_reset"] = "metrics_reset"


LifecycleEvent = Annotated[
    Union[
        RequestStart,
        RequestAttempt,
        RequestRetry,
        RequestSuccess,
        RequestError,
        BatchStart,
        BatchComplete,
        MetricsUpdate,
        CancelAll,
        MetricsReset,
    ],
    Field(discriminator="kind"),
]

_event_adapter: TypeAdapter[LifecycleEvent] = TypeAdapter(LifecycleEvent)


def parse_event(data: dict[str, Any]) -> LifecycleEvent:
    """Rebuild a typed event from its dumped form."""
    return _event_adapter.validate_python(data)
