"""
Cooperative cancellation.

A CancelToken is handed to every operation attempt. Cancellation is
advisory: the operation is expected to check or await the token and stop
its own work.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from request_governor.errors import AbortError, GovernorTimeoutError
from request_governor.telemetry.logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

logger = get_logger("request_governor.cancel")


class CancelReason(str, Enum):
    """Reasons for cancellation."""

    USER_REQUEST = "user_request"
    TIMEOUT = "timeout"
    SHUTDOWN = "shutdown"


@dataclass
class CancelState:
    """State of a cancellation token.

    Attributes:
        cancelled: Whether cancellation was requested
        reason: Reason for cancellation
        timestamp: Time of cancellation
        metadata: Extra details supplied by the canceller
    """

    cancelled: bool = False
    reason: CancelReason | None = None
    timestamp: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class CancelToken:
    """Cancellation signal for one operation attempt.

    Example:
        >>> async def fetch(token: CancelToken) -> bytes:
        ...     while not token.is_cancelled:
        ...         chunk = await read_chunk()
        ...         ...
        ...     token.raise_if_cancelled()
    """

    def __init__(self) -> None:
        self._state = CancelState()
        self._event = asyncio.Event()
        self._callbacks: list[Callable[[CancelReason], Any]] = []
        self._pending: set[asyncio.Future[Any]] = set()

    def cancel(
        self,
        reason: CancelReason = CancelReason.USER_REQUEST,
        **metadata: Any,
    ) -> bool:
        """Request cancellation.

        Args:
            reason: Reason for cancellation
            **metadata: Additional metadata

        Returns:
            True if cancellation was newly requested, False if already cancelled
        """
        if self._state.cancelled:
            return False

        self._state.cancelled = True
        self._state.reason = reason
        self._state.timestamp = time.time()
        self._state.metadata.update(metadata)
        self._event.set()

        for callback in list(self._callbacks):
            self._invoke(callback, reason)

        return True

    def _invoke(self, callback: Callable[[CancelReason], Any], reason: CancelReason) -> None:
        try:
            result = callback(reason)
            if asyncio.iscoroutine(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._on_callback_done)
        except Exception:
            logger.exception("Cancel callback failed", reason=reason.value)

    def _on_callback_done(self, task: asyncio.Future[Any]) -> None:
        self._pending.discard(task)
        if not task.cancelled() and (error := task.exception()) is not None:
            logger.error("Async cancel callback failed", error=repr(error))

    @property
    def is_cancelled(self) -> bool:
        return self._state.cancelled

    @property
    def reason(self) -> CancelReason | None:
        return self._state.reason

    @property
    def state(self) -> CancelState:
        return self._state

    async def wait(self) -> CancelReason:
        """Wait until cancellation is requested.

        Returns:
            Cancellation reason
        """
        await self._event.wait()
        return self._state.reason or CancelReason.USER_REQUEST

    def on_cancel(self, callback: Callable[[CancelReason], Any]) -> CancelToken:
        """Register a callback to be called on cancellation.

        Called immediately when the token is already cancelled.

        Returns:
            Self for chaining
        """
        self._callbacks.append(callback)
        if self._state.cancelled and self._state.reason:
            self._invoke(callback, self._state.reason)
        return self

    def raise_if_cancelled(self) -> None:
        """Raise the matching pipeline error if cancelled.

        Raises:
            GovernorTimeoutError: If cancelled because a deadline expired
            AbortError: If cancelled for any other reason
        """
        if not self._state.cancelled:
            return
        if self._state.reason == CancelReason.TIMEOUT:
            raise GovernorTimeoutError(self._state.metadata.get("timeout_ms", 0))
        raise AbortError(reason=self._state.reason.value if self._state.reason else None)
