"""
Request descriptions accepted by the orchestrator.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar, Union

from request_governor.resilience.cancel import CancelToken

T = TypeVar("T")

Operation = Callable[[CancelToken], Awaitable[T]]
"""An opaque async unit of work; receives the cancellation token of its attempt."""


@dataclass
class RequestOptions:
    """Per-request options.

    Attributes:
        priority: Higher values are scheduled and admitted first
        timeout_ms: Per-attempt deadline (default from configuration)
        retry: Whether failed attempts may be retried
        wait: Whether to wait for rate capacity instead of failing
        request_id: Identifier used in events and logs (generated if omitted)
        metadata: Extra fields reported in events and status snapshots
    """

    priority: int = 0
    timeout_ms: float | None = None
    retry: bool = True
    wait: bool = True
    request_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class Request(Generic[T]):
    """An operation together with its options, as used by batch calls."""

    operation: Operation[T]
    options: RequestOptions = field(default_factory=RequestOptions)


RequestLike = Union[Request[T], Operation[T]]
