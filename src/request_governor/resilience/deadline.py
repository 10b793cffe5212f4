"""
Per-attempt deadlines and manual cancellation.

Races an attempt against a timer. The attempt receives a CancelToken that
is cancelled when the timer fires or when the guard is aborted by id.
"""

from __future__ import annotations

import asyncio
import os
import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from request_governor.errors import AbortError, GovernorTimeoutError
from request_governor.resilience.cancel import CancelReason, CancelToken
from request_governor.resilience.signals import DeadlineSnapshot
from request_governor.telemetry.logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

logger = get_logger("request_governor.deadline")


@dataclass
class DeadlineConfig:
    """Configuration for deadline guards.

    Attributes:
        default_timeout_ms: Deadline applied when a call gives none
    """

    default_timeout_ms: float = 10000

    def __post_init__(self) -> None:
        if self.default_timeout_ms <= 0:
            raise ValueError("default_timeout_ms must be positive")

    @classmethod
    def from_env(cls) -> DeadlineConfig:
        """Create configuration from environment variables."""
        return cls(default_timeout_ms=float(os.getenv("GOVERNOR_TIMEOUT_MS", "10000")))


@dataclass
class DeadlineHandle:
    """A cancellation token paired with the timer that may trigger it.

    Owned by exactly one attempt; released the moment that attempt settles.
    """

    guard_id: str
    token: CancelToken
    timeout_ms: float
    timer: asyncio.TimerHandle | None = None
    created_at: float = field(default_factory=time.monotonic)

    def release(self) -> None:
        """Clear the timer, if still armed."""
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None

    @property
    def armed(self) -> bool:
        return self.timer is not None


class DeadlineGuard:
    """Runs attempts under a deadline.

    Example:
        >>> guard = DeadlineGuard(DeadlineConfig(default_timeout_ms=5000))
        >>> async def attempt(token: CancelToken) -> str:
        ...     return await fetch_with(token)
        >>> result = await guard.guard(attempt, timeout_ms=50)
    """

    def __init__(self, config: DeadlineConfig | None = None) -> None:
        self._config = config or DeadlineConfig()
        self._active: dict[str, DeadlineHandle] = {}
        # Armed timers keyed by handle identity, independent of _active
        self._timers: dict[int, asyncio.TimerHandle] = {}

    @property
    def default_timeout_ms(self) -> float:
        return self._config.default_timeout_ms

    @property
    def active_count(self) -> int:
        """Number of attempts currently guarded."""
        return len(self._active)

    @property
    def armed_timers(self) -> int:
        """Number of deadline timers still armed."""
        return sum(1 for timer in self._timers.values() if not timer.cancelled())

    def active_ids(self) -> list[str]:
        return list(self._active)

    async def guard(
        self,
        attempt: Callable[[CancelToken], Awaitable[T]],
        timeout_ms: float | None = None,
        *,
        guard_id: str | None = None,
    ) -> T:
        """Run one attempt under a deadline.

        Args:
            attempt: Async callable receiving the attempt's CancelToken
            timeout_ms: Deadline in milliseconds (default from config)
            guard_id: Identifier usable with ``abort`` (generated if omitted)

        Returns:
            The attempt's result, if it settles first

        Raises:
            GovernorTimeoutError: If the deadline expires first
            AbortError: If the guard is aborted first
            Exception: Whatever the attempt raised, unchanged
        """
        if timeout_ms is None:
            timeout_ms = self._config.default_timeout_ms
        if timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")

        loop = asyncio.get_running_loop()
        guard_id = guard_id or f"deadline_{uuid.uuid4().hex[:12]}"
        token = CancelToken()
        handle = DeadlineHandle(guard_id=guard_id, token=token, timeout_ms=timeout_ms)

        cancelled: asyncio.Future[CancelReason] = loop.create_future()

        def on_cancel(reason: CancelReason) -> None:
            if not cancelled.done():
                cancelled.set_result(reason)

        token.on_cancel(on_cancel)
        task = asyncio.ensure_future(attempt(token))
        handle.timer = loop.call_later(timeout_ms / 1000.0, self._expire, handle)
        self._timers[id(handle)] = handle.timer
        self._active[guard_id] = handle

        try:
            await asyncio.wait({task, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            token.cancel(CancelReason.SHUTDOWN)
            task.add_done_callback(_discard_outcome)
            raise
        finally:
            self._release(handle)
            self._active.pop(guard_id, None)
            if not cancelled.done():
                cancelled.cancel()

        if cancelled.done() and not cancelled.cancelled():
            # Late settlement of the attempt is ignored
            task.add_done_callback(_discard_outcome)
            if cancelled.result() == CancelReason.TIMEOUT:
                raise GovernorTimeoutError(timeout_ms, guard_id=guard_id)
            raise AbortError(
                f"Request {guard_id} aborted",
                reason=cancelled.result().value,
            )

        return task.result()

    def _release(self, handle: DeadlineHandle) -> None:
        handle.release()
        self._timers.pop(id(handle), None)

    def _expire(self, handle: DeadlineHandle) -> None:
        handle.timer = None
        self._timers.pop(id(handle), None)
        self._active.pop(handle.guard_id, None)
        logger.warning(
            "Attempt cancelled by timeout",
            guard_id=handle.guard_id,
            timeout_ms=handle.timeout_ms,
        )
        handle.token.cancel(CancelReason.TIMEOUT, timeout_ms=handle.timeout_ms)

    def abort(self, guard_id: str, reason: CancelReason = CancelReason.USER_REQUEST) -> bool:
        """Cancel one active attempt.

        Returns:
            True if an active guard was found and aborted
        """
        handle = self._active.pop(guard_id, None)
        if handle is None:
            return False

        self._release(handle)
        handle.token.cancel(reason)
        logger.info("Attempt aborted", guard_id=guard_id, reason=reason.value)
        return True

    def abort_all(self, reason: CancelReason = CancelReason.USER_REQUEST) -> int:
        """Cancel every active attempt.

        Returns:
            Number of attempts aborted
        """
        handles = list(self._active.values())
        self._active.clear()
        if handles:
            logger.info("Aborting active attempts", count=len(handles))

        for handle in handles:
            self._release(handle)
            handle.token.cancel(reason)
        return len(handles)

    def status(self) -> DeadlineSnapshot:
        now = time.monotonic()
        return DeadlineSnapshot(
            active_requests=len(self._active),
            requests=[
                {"id": h.guard_id, "duration_ms": (now - h.created_at) * 1000}
                for h in self._active.values()
            ],
        )


def _discard_outcome(task: asyncio.Future[Any]) -> None:
    if not task.cancelled():
        task.exception()
