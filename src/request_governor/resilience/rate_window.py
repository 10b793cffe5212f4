"""
Sliding-window rate limiter.

Admits at most ``max_requests`` operations within any rolling
``time_window_ms``. Requests beyond that wait in a priority-ordered list
that is drained when tickets age out of the window and re-checked on
every completion of an admitted operation.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import os
import time
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

from request_governor.errors import QueueCleared, RateLimitExceeded
from request_governor.resilience.signals import RateWindowSnapshot
from request_governor.telemetry.logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

logger = get_logger("request_governor.rate_window")

# Cancelled waiters tolerated in the heap before it is rebuilt
_COMPACT_THRESHOLD = 64


@dataclass
class RateWindowConfig:
    """Configuration for the rate window.

    Attributes:
        max_requests: Admissions allowed per window (0 = unlimited)
        time_window_ms: Length of the rolling window
    """

    max_requests: int = 10
    time_window_ms: float = 1000

    def __post_init__(self) -> None:
        if self.max_requests < 0:
            raise ValueError("max_requests must be >= 0")
        if self.time_window_ms <= 0:
            raise ValueError("time_window_ms must be positive")

    @classmethod
    def per_second(cls, requests: int) -> RateWindowConfig:
        return cls(max_requests=requests, time_window_ms=1000)

    @classmethod
    def per_minute(cls, requests: int) -> RateWindowConfig:
        return cls(max_requests=requests, time_window_ms=60_000)

    @classmethod
    def from_env(cls) -> RateWindowConfig:
        """Create configuration from environment variables."""
        return cls(
            max_requests=int(os.getenv("GOVERNOR_MAX_REQUESTS", "10")),
            time_window_ms=float(os.getenv("GOVERNOR_TIME_WINDOW_MS", "1000")),
        )

    @classmethod
    def unlimited(cls) -> RateWindowConfig:
        return cls(max_requests=0)


@dataclass(order=True)
class _WaitingEntry:
    sort_key: tuple[int, int]
    priority: int = field(compare=False)
    admitted: asyncio.Future[None] = field(compare=False)
    queued_at: float = field(compare=False, default_factory=time.monotonic)


class RateWindow:
    """Sliding-window admission control.

    Example:
        >>> window = RateWindow(RateWindowConfig(max_requests=2, time_window_ms=1000))
        >>> result = await window.throttle(call_upstream, priority=5)
    """

    def __init__(
        self,
        config: RateWindowConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or RateWindowConfig()
        self._clock = clock
        self._window = self._config.time_window_ms / 1000.0
        self._tickets: deque[float] = deque()
        self._waiting: list[_WaitingEntry] = []
        self._stale = 0
        self._sequence = itertools.count()
        self._active = 0
        self._drain_timer: asyncio.TimerHandle | None = None

    @property
    def is_limited(self) -> bool:
        return self._config.max_requests > 0

    @property
    def active_requests(self) -> int:
        return self._active

    @property
    def queued_requests(self) -> int:
        return sum(1 for e in self._waiting if not e.admitted.done())

    def _prune(self) -> None:
        cutoff = self._clock() - self._window
        while self._tickets and self._tickets[0] <= cutoff:
            self._tickets.popleft()

    def _has_capacity(self) -> bool:
        if not self.is_limited:
            return True
        self._prune()
        return len(self._tickets) < self._config.max_requests

    def _admit(self) -> None:
        self._tickets.append(self._clock())
        self._active += 1

    def get_wait_time(self) -> float:
        """Seconds until at least one more admission would be possible.

        Introspection only; never blocks.
        """
        if self._has_capacity() or not self._tickets:
            return 0.0
        return max(0.0, self._tickets[0] + self._window - self._clock())

    async def throttle(
        self,
        operation: Callable[[], Awaitable[T]],
        priority: int = 0,
        *,
        wait: bool = True,
    ) -> T:
        """Run an operation once rate capacity allows.

        Args:
            operation: Async callable to run after admission
            priority: Higher values are admitted first among waiters
            wait: If False, raise instead of waiting when over the limit

        Returns:
            The operation's result

        Raises:
            RateLimitExceeded: If over the limit and ``wait`` is False
            QueueCleared: If the wait list is cleared before admission
        """
        if not self._waiting and self._has_capacity():
            self._admit()
        elif not wait:
            raise RateLimitExceeded(self.get_wait_time())
        else:
            await self._wait_for_admission(priority)

        try:
            return await operation()
        finally:
            self._active -= 1
            self._drain()

    async def _wait_for_admission(self, priority: int) -> None:
        loop = asyncio.get_running_loop()
        entry = _WaitingEntry(
            sort_key=(-priority, next(self._sequence)),
            priority=priority,
            admitted=loop.create_future(),
        )
        heapq.heappush(self._waiting, entry)
        logger.debug(
            "Request waiting for rate capacity",
            priority=priority,
            queued=len(self._waiting),
        )
        self._drain()

        try:
            await entry.admitted
        except asyncio.CancelledError:
            if not entry.admitted.done() or entry.admitted.cancelled():
                self._discard_waiter()
            elif entry.admitted.exception() is None:
                # Admitted but the caller went away before running
                self._active -= 1
                self._drain()
            raise

    def _drain(self) -> None:
        """Admit waiters while capacity allows, then arm a timer for the rest."""
        if self._drain_timer is not None:
            self._drain_timer.cancel()
            self._drain_timer = None

        while self._waiting and self._has_capacity():
            entry = heapq.heappop(self._waiting)
            if entry.admitted.done():
                self._stale -= 1
                continue
            self._admit()
            entry.admitted.set_result(None)

        while self._waiting and self._waiting[0].admitted.done():
            heapq.heappop(self._waiting)
            self._stale -= 1

        if self._waiting:
            loop = asyncio.get_running_loop()
            self._drain_timer = loop.call_later(self.get_wait_time(), self._on_timer)

    def _discard_waiter(self) -> None:
        self._stale += 1
        if self._stale > max(_COMPACT_THRESHOLD, len(self._waiting) - self._stale):
            self._waiting = [e for e in self._waiting if not e.admitted.done()]
            heapq.heapify(self._waiting)
            self._stale = 0

    def _on_timer(self) -> None:
        self._drain_timer = None
        self._drain()

    def clear_queue(self) -> int:
        """Reject every waiting request with QueueCleared.

        Returns:
            Number of requests cleared
        """
        if self._drain_timer is not None:
            self._drain_timer.cancel()
            self._drain_timer = None

        waiting, self._waiting = self._waiting, []
        self._stale = 0
        count = 0
        for entry in waiting:
            if not entry.admitted.done():
                entry.admitted.set_exception(QueueCleared())
                count += 1
        if count:
            logger.info("Rate window queue cleared", count=count)
        return count

    def status(self) -> RateWindowSnapshot:
        self._prune()
        if self.is_limited:
            available = max(0, self._config.max_requests - len(self._tickets))
        else:
            available = -1
        return RateWindowSnapshot(
            active_requests=self._active,
            queued_requests=self.queued_requests,
            requests_in_window=len(self._tickets),
            available_slots=available,
            next_available_in=self.get_wait_time(),
        )
