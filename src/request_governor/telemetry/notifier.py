"""
Lifecycle event delivery.

Observers are registered explicitly and receive typed events in emission
order. An observer that fails never affects the pipeline.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from request_governor.telemetry.logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from request_governor.types.events import LifecycleEvent

logger = get_logger("request_governor.notifier")


class EventNotifier:
    """Fire-and-forget delivery of lifecycle events.

    Example:
        >>> notifier = EventNotifier()
        >>> unsubscribe = notifier.subscribe(print)
        >>> notifier.emit(RequestStart(request_id="req_1"))
        >>> unsubscribe()
    """

    def __init__(self) -> None:
        self._observers: list[Callable[[LifecycleEvent], Any]] = []
        self._tasks: set[asyncio.Task[Any]] = set()

    def subscribe(self, observer: Callable[[LifecycleEvent], Any]) -> Callable[[], None]:
        """Register an observer.

        Args:
            observer: Callable receiving each event; may be a coroutine function

        Returns:
            Function that removes the observer again
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def emit(self, event: LifecycleEvent) -> None:
        """Deliver an event to every observer, in registration order."""
        for observer in list(self._observers):
            try:
                result = observer(event)
                if asyncio.iscoroutine(result):
                    task = asyncio.ensure_future(result)
                    self._tasks.add(task)
                    task.add_done_callback(self._on_task_done)
            except Exception:
                logger.exception("Event observer failed", event_kind=event.kind)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        if (error := task.exception()) is not None:
            logger.error(
                "Async event observer failed",
                error=repr(error),
            )
