"""编排器：将调度、限流、重试与超时组合为单一的请求调用。

Orchestrator composing the resilience policies around each request.

For every request the nesting is, outermost first:
1. PriorityScheduler (concurrency slot, priority order)
2. RateWindow (sliding-window admission)
3. RetryPolicy (optional; backoff between attempts)
4. DeadlineGuard (fresh deadline and CancelToken per attempt)
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import TYPE_CHECKING, Any, TypeVar

from request_governor.batch import (
    BatchResult,
    BatchType,
    first_settled,
    first_success,
    gather_all,
    settle_all,
)
from request_governor.client.request import Request, RequestOptions
from request_governor.config import GovernorConfig
from request_governor.errors import classify_error
from request_governor.resilience.cancel import CancelReason
from request_governor.resilience.deadline import DeadlineGuard
from request_governor.resilience.rate_window import RateWindow
from request_governor.resilience.retry import RetryAttempt, RetryPolicy
from request_governor.resilience.scheduler import PriorityScheduler
from request_governor.telemetry.logger import (
    LogContext,
    get_logger,
    set_log_context,
)
from request_governor.telemetry.metrics import MetricsSnapshot, RequestMetrics
from request_governor.telemetry.notifier import EventNotifier
from request_governor.types.events import (
    BatchComplete,
    BatchStart,
    CancelAll,
    MetricsReset,
    MetricsUpdate,
    RequestAttempt,
    RequestError,
    RequestRetry,
    RequestStart,
    RequestSuccess,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from request_governor.client.request import Operation, RequestLike
    from request_governor.resilience.cancel import CancelToken
    from request_governor.types.events import LifecycleEvent

T = TypeVar("T")

logger = get_logger("request_governor.orchestrator")


class Orchestrator:
    """Runs operations through the full resilience pipeline.

    Example:
        >>> orchestrator = Orchestrator(GovernorConfig.from_dict({"maxConcurrent": 2}))
        >>> async def fetch(token: CancelToken) -> dict:
        ...     return await call_upstream(token)
        >>> data = await orchestrator.request(fetch, priority=5, timeout_ms=2000)
        >>> results = await orchestrator.settle_all([fetch, fetch, fetch])
    """

    def __init__(
        self,
        config: GovernorConfig | None = None,
        *,
        on_event: Callable[[LifecycleEvent], Any] | None = None,
        name: str = "default",
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Pipeline configuration
            on_event: Optional observer registered before any request runs
            name: Identifier for this orchestrator in logs and metrics
        """
        self._config = config or GovernorConfig()
        self._name = name

        self._scheduler = PriorityScheduler(self._config.scheduler)
        self._rate_window = RateWindow(self._config.rate_window)
        self._retry = RetryPolicy(self._config.retry)
        self._deadline = DeadlineGuard(self._config.deadline)
        self._metrics = RequestMetrics(self._config.latency_window)

        self._notifier = EventNotifier()
        if on_event is not None:
            self._notifier.subscribe(on_event)

        self._background: set[asyncio.Task[Any]] = set()

    @property
    def name(self) -> str:
        return self._name

    @property
    def config(self) -> GovernorConfig:
        return self._config

    @property
    def scheduler(self) -> PriorityScheduler:
        return self._scheduler

    @property
    def rate_window(self) -> RateWindow:
        return self._rate_window

    @property
    def deadline(self) -> DeadlineGuard:
        return self._deadline

    def subscribe(self, observer: Callable[[LifecycleEvent], Any]) -> Callable[[], None]:
        """Register a lifecycle observer; returns its unsubscribe function."""
        return self._notifier.subscribe(observer)

    async def request(
        self,
        operation: Operation[T],
        options: RequestOptions | None = None,
        **overrides: Any,
    ) -> T:
        """Run one operation through the pipeline.

        Args:
            operation: Async callable receiving the attempt's CancelToken
            options: Request options
            **overrides: Individual RequestOptions fields (priority, timeout_ms, ...)

        Returns:
            The operation's result

        Raises:
            GovernorTimeoutError: The final attempt exceeded its deadline
            AbortError: The request was cancelled
            RateLimitExceeded: Over the rate limit with ``wait=False``
            QueueCleared: Discarded while waiting for rate capacity
            Exception: The operation's own final failure, unchanged
        """
        options = options or RequestOptions()
        if overrides:
            options = RequestOptions(**{**vars(options), **overrides})

        request_id = options.request_id or f"req_{uuid.uuid4().hex[:12]}"
        timeout_ms = options.timeout_ms or self._deadline.default_timeout_ms
        attempts = 0
        start = time.monotonic()

        set_log_context(LogContext(request_id=request_id, extra=dict(options.metadata)))
        self._notifier.emit(
            RequestStart(
                request_id=request_id,
                priority=options.priority,
                metadata=options.metadata,
            )
        )

        async def attempt(index: int) -> T:
            nonlocal attempts
            attempts = index + 1
            set_log_context(LogContext(request_id=request_id, attempt=index))
            self._notifier.emit(RequestAttempt(request_id=request_id, attempt=index))
            return await self._deadline.guard(
                operation, timeout_ms, guard_id=f"{request_id}:{index}"
            )

        def on_retry(retry: RetryAttempt) -> None:
            self._notifier.emit(
                RequestRetry(
                    request_id=request_id,
                    attempt=retry.index,
                    delay_ms=retry.delay * 1000,
                    error=str(retry.error),
                )
            )

        async def governed() -> T:
            if options.retry:
                return await self._retry.run(
                    attempt, context={"request_id": request_id}, on_retry=on_retry
                )
            return await attempt(0)

        async def throttled() -> T:
            return await self._rate_window.throttle(
                governed, options.priority, wait=options.wait
            )

        try:
            result = await self._scheduler.enqueue(
                throttled,
                options.priority,
                job_id=request_id,
                metadata=options.metadata,
            )
        except (Exception, asyncio.CancelledError) as e:
            # Caller cancellation is a terminal failure too
            latency_ms = (time.monotonic() - start) * 1000
            self._record(latency_ms, success=False, attempts=attempts)
            logger.debug("Request failed", request_id=request_id, error=repr(e))
            self._notifier.emit(
                RequestError(
                    request_id=request_id,
                    message=str(e) or type(e).__name__,
                    error_kind=classify_error(e).value,
                    latency_ms=latency_ms,
                )
            )
            raise

        latency_ms = (time.monotonic() - start) * 1000
        self._record(latency_ms, success=True, attempts=attempts)
        self._notifier.emit(
            RequestSuccess(request_id=request_id, latency_ms=latency_ms, attempts=attempts)
        )
        return result

    def _record(self, latency_ms: float, *, success: bool, attempts: int) -> None:
        self._metrics.record(latency_ms, success, attempts)
        self._notifier.emit(MetricsUpdate(snapshot=self.get_metrics().to_dict()))

    # Batch combinators

    def _spawn(self, request: RequestLike[T]) -> asyncio.Task[T]:
        if isinstance(request, Request):
            coro = self.request(request.operation, request.options)
        else:
            coro = self.request(request)
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if not task.cancelled():
            # Failures are reported through events; mark them retrieved
            task.exception()

    async def _run_batch(
        self,
        batch_type: BatchType,
        requests: Sequence[RequestLike[T]],
        combine: Callable[[list[asyncio.Task[T]]], Awaitable[Any]],
    ) -> Any:
        self._notifier.emit(BatchStart(batch_type=batch_type.value, count=len(requests)))
        tasks = [self._spawn(r) for r in requests]
        try:
            return await combine(tasks)
        finally:
            done = [t for t in tasks if t.done()]
            successful = sum(1 for t in done if not t.cancelled() and t.exception() is None)
            self._notifier.emit(
                BatchComplete(
                    batch_type=batch_type.value,
                    total=len(requests),
                    successful=successful,
                    failed=len(done) - successful,
                )
            )

    async def all(self, requests: Sequence[RequestLike[T]]) -> list[T]:
        """Run requests concurrently; fail fast if any fails."""
        return await self._run_batch(BatchType.ALL, requests, gather_all)

    async def settle_all(self, requests: Sequence[RequestLike[T]]) -> BatchResult[T]:
        """Run requests concurrently and report every outcome. Never raises."""
        return await self._run_batch(BatchType.SETTLE_ALL, requests, settle_all)

    async def race(self, requests: Sequence[RequestLike[T]]) -> T:
        """Return the outcome of the first request to settle, success or failure."""
        return await self._run_batch(BatchType.RACE, requests, first_settled)

    async def first_success(self, requests: Sequence[RequestLike[T]]) -> T:
        """Return the first successful result; fail only if every request fails."""
        return await self._run_batch(BatchType.FIRST_SUCCESS, requests, first_success)

    # Introspection and control

    def get_metrics(self) -> MetricsSnapshot:
        """Metrics plus scheduler, rate window and deadline status."""
        snapshot = self._metrics.snapshot()
        snapshot.scheduler = self._scheduler.status().to_dict()
        snapshot.rate_window = self._rate_window.status().to_dict()
        snapshot.deadline = self._deadline.status().to_dict()
        return snapshot

    def reset_metrics(self) -> None:
        self._metrics.reset()
        self._scheduler.reset_stats()
        self._notifier.emit(MetricsReset())

    def cancel_all(self) -> CancelAll:
        """Abort running attempts, cancel queued jobs and clear rate waiters."""
        event = CancelAll(
            aborted=self._deadline.abort_all(CancelReason.USER_REQUEST),
            cancelled=self._scheduler.cancel_all(),
            cleared=self._rate_window.clear_queue(),
        )
        logger.info(
            "Cancelled all requests",
            aborted=event.aborted,
            cancelled=event.cancelled,
            cleared=event.cleared,
        )
        self._notifier.emit(event)
        return event

    async def wait_idle(self) -> None:
        """Wait for requests still running from earlier batch calls."""
        while self._background:
            await asyncio.wait(set(self._background))

    async def aclose(self) -> None:
        """Cancel everything outstanding and wait for it to settle."""
        self.cancel_all()
        await self.wait_idle()
        await self._scheduler.join()

    async def __aenter__(self) -> Orchestrator:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
