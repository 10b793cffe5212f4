"""
Priority scheduler with bounded concurrency.

Jobs wait in a heap keyed on (-priority, arrival sequence) and are
dispatched whenever a concurrency slot is free. Dispatch is always
deferred to the next loop turn, so jobs submitted together compete by
priority rather than by submission order.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import os
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from request_governor.errors import JobCancelled, is_aborted
from request_governor.resilience.signals import SchedulerSnapshot
from request_governor.telemetry.logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Generator

T = TypeVar("T")

logger = get_logger("request_governor.scheduler")

# Stale heap entries tolerated before the heap is rebuilt
_COMPACT_THRESHOLD = 64


@dataclass
class SchedulerConfig:
    """Configuration for the priority scheduler.

    Attributes:
        max_concurrent: Maximum jobs running at once (0 = unlimited)
    """

    max_concurrent: int = 5

    def __post_init__(self) -> None:
        if self.max_concurrent < 0:
            raise ValueError("max_concurrent must be >= 0")

    @classmethod
    def from_env(cls) -> SchedulerConfig:
        """Create configuration from environment variables."""
        return cls(max_concurrent=int(os.getenv("GOVERNOR_MAX_CONCURRENT", "5")))

    @classmethod
    def unlimited(cls) -> SchedulerConfig:
        return cls(max_concurrent=0)


class JobStatus(str, Enum):
    """Lifecycle states of a job."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


@dataclass(eq=False)
class Job(Generic[T]):
    """One unit of work admitted to the scheduler.

    Attributes:
        job_id: Unique identifier
        priority: Higher values are dispatched first
        sequence: Arrival order, used to break priority ties
        operation: Async callable run once the job is dispatched
        future: Settles with the operation's outcome
        status: Current lifecycle state
        queued_at: Enqueue time (epoch seconds)
        started_at: Dispatch time (epoch seconds)
        completed_at: Settlement time (epoch seconds)
        metadata: Caller-supplied fields reported in status snapshots
    """

    job_id: str
    priority: int
    sequence: int
    operation: Callable[[], Awaitable[T]]
    future: asyncio.Future[T]
    status: JobStatus = JobStatus.QUEUED
    queued_at: float = field(default_factory=time.time)
    started_at: float | None = None
    completed_at: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def sort_key(self) -> tuple[int, int]:
        return (-self.priority, self.sequence)

    def __lt__(self, other: Job[Any]) -> bool:
        return self.sort_key < other.sort_key

    def __await__(self) -> Generator[Any, None, T]:
        return self.future.__await__()


def _empty_stats() -> dict[str, int]:
    return {"total": 0, "completed": 0, "failed": 0, "cancelled": 0}


class PriorityScheduler:
    """Bounded-concurrency scheduler ordered by priority, then arrival.

    Example:
        >>> scheduler = PriorityScheduler(SchedulerConfig(max_concurrent=2))
        >>> result = await scheduler.enqueue(call_upstream, priority=5)

        >>> # Or keep the job to cancel it while queued
        >>> job = scheduler.submit(call_upstream)
        >>> scheduler.cancel(job.job_id)
    """

    def __init__(self, config: SchedulerConfig | None = None) -> None:
        self._config = config or SchedulerConfig()
        self._heap: list[Job[Any]] = []
        self._queued: dict[str, Job[Any]] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._sequence = itertools.count()
        self._running = 0
        self._peak_running = 0
        self._paused = False
        self._dispatch_scheduled = False
        self._stats = _empty_stats()

    @property
    def max_concurrent(self) -> int:
        return self._config.max_concurrent

    @property
    def running(self) -> int:
        return self._running

    @property
    def queued(self) -> int:
        return len(self._queued)

    @property
    def peak_running(self) -> int:
        """Highest number of simultaneously running jobs observed."""
        return self._peak_running

    @property
    def is_paused(self) -> bool:
        return self._paused

    def submit(
        self,
        operation: Callable[[], Awaitable[T]],
        priority: int = 0,
        *,
        job_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Job[T]:
        """Queue an operation and return its job without waiting.

        The returned Job is awaitable and resolves with the operation's result.
        """
        loop = asyncio.get_running_loop()
        job: Job[T] = Job(
            job_id=job_id or f"job_{uuid.uuid4().hex[:12]}",
            priority=priority,
            sequence=next(self._sequence),
            operation=operation,
            future=loop.create_future(),
            metadata=dict(metadata or {}),
        )
        if job.job_id in self._queued:
            raise ValueError(f"Job {job.job_id} is already queued")

        heapq.heappush(self._heap, job)
        self._queued[job.job_id] = job
        self._stats["total"] += 1
        job.future.add_done_callback(lambda _: self._on_caller_done(job))

        logger.debug("Job queued", job_id=job.job_id, priority=priority)
        self._schedule_dispatch()
        return job

    async def enqueue(
        self,
        operation: Callable[[], Awaitable[T]],
        priority: int = 0,
        *,
        job_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> T:
        """Queue an operation and wait for its outcome.

        Args:
            operation: Async callable run once dispatched
            priority: Higher values are dispatched first (default 0)
            job_id: Optional identifier usable with ``cancel``
            metadata: Extra fields reported in status snapshots

        Returns:
            The operation's result

        Raises:
            JobCancelled: If the job is cancelled while queued
            Exception: Whatever the operation raised, unchanged
        """
        job = self.submit(operation, priority, job_id=job_id, metadata=metadata)
        return await job.future

    def _on_caller_done(self, job: Job[Any]) -> None:
        # The caller stopped waiting on a job that never started
        if job.future.cancelled() and job.status == JobStatus.QUEUED:
            self._remove(job, JobStatus.CANCELLED)

    def _remove(self, job: Job[Any], status: JobStatus) -> None:
        self._queued.pop(job.job_id, None)
        job.status = status
        job.completed_at = time.time()
        if status == JobStatus.CANCELLED:
            self._stats["cancelled"] += 1
        if len(self._heap) - len(self._queued) > max(_COMPACT_THRESHOLD, len(self._queued)):
            self._compact()

    def _compact(self) -> None:
        """Drop jobs that left the queue without being dispatched."""
        self._heap = [job for job in self._heap if job.status == JobStatus.QUEUED]
        heapq.heapify(self._heap)

    def _schedule_dispatch(self) -> None:
        if self._dispatch_scheduled:
            return
        self._dispatch_scheduled = True
        asyncio.get_running_loop().call_soon(self._dispatch)

    def _has_slot(self) -> bool:
        return self._config.max_concurrent == 0 or self._running < self._config.max_concurrent

    def _dispatch(self) -> None:
        self._dispatch_scheduled = False
        if self._paused:
            return

        loop = asyncio.get_running_loop()
        while self._heap and self._has_slot():
            job = heapq.heappop(self._heap)
            if job.status != JobStatus.QUEUED:
                continue

            self._queued.pop(job.job_id, None)
            job.status = JobStatus.RUNNING
            job.started_at = time.time()
            self._running += 1
            self._peak_running = max(self._peak_running, self._running)
            logger.debug(
                "Job dispatched",
                job_id=job.job_id,
                priority=job.priority,
                running=self._running,
            )

            task = loop.create_task(self._run(job))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run(self, job: Job[Any]) -> None:
        try:
            result = await job.operation()
        except asyncio.CancelledError:
            job.status = JobStatus.CANCELLED
            self._stats["cancelled"] += 1
            if not job.future.done():
                job.future.cancel()
            raise
        except Exception as e:
            if is_aborted(e):
                job.status = JobStatus.CANCELLED
                self._stats["cancelled"] += 1
            else:
                job.status = JobStatus.FAILED
                self._stats["failed"] += 1
            if not job.future.done():
                job.future.set_exception(e)
        else:
            job.status = JobStatus.COMPLETED
            self._stats["completed"] += 1
            if not job.future.done():
                job.future.set_result(result)
        finally:
            job.completed_at = time.time()
            self._running -= 1
            self._schedule_dispatch()

    def cancel(self, job_id: str) -> bool:
        """Cancel a queued job.

        Running jobs are not preemptible and are left untouched.

        Returns:
            True if a queued job was found and cancelled
        """
        job = self._queued.get(job_id)
        if job is None or job.status != JobStatus.QUEUED:
            return False

        self._remove(job, JobStatus.CANCELLED)
        if not job.future.done():
            job.future.set_exception(JobCancelled(job_id))
        logger.debug("Job cancelled", job_id=job_id)
        return True

    def cancel_all(self) -> int:
        """Cancel every queued job.

        Returns:
            Number of jobs cancelled
        """
        count = sum(1 for job_id in list(self._queued) if self.cancel(job_id))
        self._compact()
        return count

    def pause(self) -> None:
        """Stop dispatching new jobs; running jobs continue."""
        self._paused = True

    def resume(self) -> None:
        """Resume dispatching."""
        self._paused = False
        self._schedule_dispatch()

    def reset_stats(self) -> None:
        self._stats = _empty_stats()

    async def join(self) -> None:
        """Wait until no job is queued or running."""
        while self._tasks or (self._queued and not self._paused):
            if self._tasks:
                await asyncio.wait(set(self._tasks))
            else:
                await asyncio.sleep(0)

    def status(self) -> SchedulerSnapshot:
        queued = sorted(self._queued.values())
        return SchedulerSnapshot(
            queued=len(queued),
            running=self._running,
            max_concurrent=self._config.max_concurrent,
            paused=self._paused,
            stats=dict(self._stats),
            queued_items=[
                {
                    "id": job.job_id,
                    "priority": job.priority,
                    "queued_at": job.queued_at,
                    "metadata": dict(job.metadata),
                }
                for job in queued
            ],
        )
