"""
Batch combinators over governed requests.

Each combinator consumes already-started request tasks and only decides how
their outcomes are combined; none of them runs anything outside the
pipeline.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from request_governor.errors import AllRequestsFailed

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

R = TypeVar("R")


class BatchType(str, Enum):
    """Ways of combining a batch of requests."""

    ALL = "all"
    SETTLE_ALL = "settle_all"
    RACE = "race"
    FIRST_SUCCESS = "first_success"


class SettledStatus(str, Enum):
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


@dataclass
class Settled(Generic[R]):
    """Outcome of one request in a settle-all batch.

    Attributes:
        status: fulfilled or rejected
        value: The result, when fulfilled
        error: The failure, when rejected
    """

    status: SettledStatus
    value: R | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.status == SettledStatus.FULFILLED

    @classmethod
    def from_task(cls, task: asyncio.Task[R]) -> Settled[R]:
        if task.cancelled():
            return cls(status=SettledStatus.REJECTED, error=asyncio.CancelledError())
        error = task.exception()
        if error is not None:
            return cls(status=SettledStatus.REJECTED, error=error)
        return cls(status=SettledStatus.FULFILLED, value=task.result())


@dataclass
class BatchResult(Generic[R]):
    """Result of a settle-all batch.

    Attributes:
        outcomes: One tagged outcome per request, in request order
        total_time_ms: Time until the last request settled
    """

    outcomes: list[Settled[R]] = field(default_factory=list)
    total_time_ms: float = 0.0

    @property
    def successful_count(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)

    @property
    def all_successful(self) -> bool:
        return all(o.ok for o in self.outcomes)

    def get_successful_results(self) -> list[R]:
        """Get only successful results, in request order."""
        return [o.value for o in self.outcomes if o.ok]  # type: ignore[misc]

    def get_errors(self) -> list[tuple[int, BaseException]]:
        """Get errors with their request indices."""
        return [
            (i, o.error)
            for i, o in enumerate(self.outcomes)
            if not o.ok and o.error is not None
        ]

    def __len__(self) -> int:
        return len(self.outcomes)

    def __iter__(self) -> Iterator[Settled[R]]:
        return iter(self.outcomes)

    def __getitem__(self, index: int) -> Settled[R]:
        return self.outcomes[index]


async def gather_all(tasks: Sequence[asyncio.Task[R]]) -> list[R]:
    """Wait for every task; fail fast with the first failure.

    Tasks still running after a failure are left alone.
    """
    if not tasks:
        return []
    pending: set[asyncio.Task[Any]] = set(tasks)
    while pending:
        done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
        for task in _in_order(tasks, done):
            if task.cancelled() or task.exception() is not None:
                task.result()  # re-raises the failure
    return [task.result() for task in tasks]


async def settle_all(tasks: Sequence[asyncio.Task[R]]) -> BatchResult[R]:
    """Wait for every task regardless of outcome. Never raises."""
    start = time.monotonic()
    if tasks:
        await asyncio.wait(set(tasks))
    return BatchResult(
        outcomes=[Settled.from_task(task) for task in tasks],
        total_time_ms=(time.monotonic() - start) * 1000,
    )


async def first_settled(tasks: Sequence[asyncio.Task[R]]) -> R:
    """Return (or raise) the outcome of the first task to settle."""
    if not tasks:
        raise ValueError("race needs at least one request")
    done, _ = await asyncio.wait(set(tasks), return_when=asyncio.FIRST_COMPLETED)
    return _in_order(tasks, done)[0].result()


async def first_success(tasks: Sequence[asyncio.Task[R]]) -> R:
    """Return the first successful result.

    Raises:
        AllRequestsFailed: If every task failed
    """
    pending: set[asyncio.Task[Any]] = set(tasks)
    while pending:
        done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
        for task in _in_order(tasks, done):
            if not task.cancelled() and task.exception() is None:
                return task.result()

    errors: list[BaseException] = [
        asyncio.CancelledError() if t.cancelled() else t.exception()  # type: ignore[misc]
        for t in tasks
    ]
    raise AllRequestsFailed(errors)


def _in_order(tasks: Sequence[asyncio.Task[R]], done: set[asyncio.Task[Any]]) -> list[asyncio.Task[R]]:
    # Ties within one wakeup go to the earliest request
    return [task for task in tasks if task in done]
