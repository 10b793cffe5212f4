"""
Retry policy with exponential backoff and proportional jitter.

delay(k) = min(initial_delay * multiplier**k + jitter, max_delay), where
jitter is drawn uniformly from [0, jitter_ratio * initial_delay * multiplier**k].
"""

from __future__ import annotations

import asyncio
import os
import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from request_governor.errors import DEFAULT_RETRYABLE_STATUSES, is_retryable_status
from request_governor.telemetry.logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

logger = get_logger("request_governor.retry")


@dataclass
class RetryConfig:
    """Configuration for retry policy.

    Attributes:
        max_retries: Retries after the first attempt (0 = no retries)
        initial_delay_ms: Base delay before the first retry
        max_delay_ms: Upper bound for any single delay
        backoff_multiplier: Growth factor per attempt
        jitter_ratio: Maximum jitter as a fraction of the exponential delay
        retryable_statuses: Status codes that may be retried
    """

    max_retries: int = 3
    initial_delay_ms: float = 1000
    max_delay_ms: float = 30000
    backoff_multiplier: float = 2.0
    jitter_ratio: float = 0.3
    retryable_statuses: set[int] = field(
        default_factory=lambda: set(DEFAULT_RETRYABLE_STATUSES)
    )

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("delays must be >= 0")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")
        self.retryable_statuses = set(self.retryable_statuses)

    @classmethod
    def from_env(cls) -> RetryConfig:
        """Create configuration from environment variables."""
        statuses = os.getenv("GOVERNOR_RETRYABLE_STATUSES")
        return cls(
            max_retries=int(os.getenv("GOVERNOR_MAX_RETRIES", "3")),
            initial_delay_ms=float(os.getenv("GOVERNOR_INITIAL_DELAY_MS", "1000")),
            max_delay_ms=float(os.getenv("GOVERNOR_MAX_DELAY_MS", "30000")),
            backoff_multiplier=float(os.getenv("GOVERNOR_BACKOFF_MULTIPLIER", "2.0")),
            retryable_statuses=(
                {int(s) for s in statuses.split(",") if s.strip()}
                if statuses
                else set(DEFAULT_RETRYABLE_STATUSES)
            ),
        )

    @classmethod
    def no_retry(cls) -> RetryConfig:
        """Create a config that disables retries."""
        return cls(max_retries=0)


@dataclass
class RetryAttempt:
    """A failed attempt that will be followed by another.

    Attributes:
        index: Index of the failed attempt (0-based)
        error: The error it raised
        delay: Seconds to wait before the next attempt
    """

    index: int
    error: Exception
    delay: float


@dataclass
class RetryResult:
    """Result of a retry run.

    Attributes:
        success: Whether the operation succeeded
        value: The result value (if success)
        error: The last error (if failed)
        attempts: Number of attempts made
        total_delay_ms: Total backoff delay in milliseconds
    """

    success: bool
    value: Any = None
    error: Exception | None = None
    attempts: int = 0
    total_delay_ms: float = 0.0


class RetryPolicy:
    """Retry policy with exponential backoff.

    Example:
        >>> policy = RetryPolicy(RetryConfig(max_retries=2, initial_delay_ms=100))
        >>> async def attempt(index: int) -> str:
        ...     return await call_upstream()
        >>> value = await policy.run(attempt)
    """

    def __init__(self, config: RetryConfig | None = None) -> None:
        self._config = config or RetryConfig()

    @property
    def config(self) -> RetryConfig:
        return self._config

    @property
    def max_attempts(self) -> int:
        return self._config.max_retries + 1

    def calculate_delay(self, attempt: int) -> float:
        """Calculate the delay after a failed attempt.

        Args:
            attempt: Index of the failed attempt (0-based)

        Returns:
            Delay in seconds
        """
        exponential_ms = self._config.initial_delay_ms * (
            self._config.backoff_multiplier ** attempt
        )
        jitter_ms = random.uniform(0, self._config.jitter_ratio * exponential_ms)
        return min(exponential_ms + jitter_ms, self._config.max_delay_ms) / 1000.0

    def is_retryable(self, error: BaseException) -> bool:
        """Check if an error may be retried.

        Cancellation is never retried; everything else is retried only when
        its status is in the configured set.
        """
        return is_retryable_status(error, self._config.retryable_statuses)

    async def execute(
        self,
        attempt_fn: Callable[[int], Awaitable[T]],
        context: dict[str, Any] | None = None,
        on_retry: Callable[[RetryAttempt], None] | None = None,
    ) -> RetryResult:
        """Run attempts until success, a non-retryable error, or exhaustion.

        Args:
            attempt_fn: Async callable performing one try, given its index
            context: Extra fields for log records
            on_retry: Called with each intermediate failure before its delay

        Returns:
            RetryResult with success status and value/error
        """
        context = context or {}
        total_delay = 0.0

        for attempt in range(self._config.max_retries + 1):
            try:
                value = await attempt_fn(attempt)
            except Exception as e:
                if not self.is_retryable(e) or attempt == self._config.max_retries:
                    logger.error(
                        "Final failure",
                        attempts=attempt + 1,
                        error=str(e),
                        **context,
                    )
                    return RetryResult(
                        success=False,
                        error=e,
                        attempts=attempt + 1,
                        total_delay_ms=total_delay * 1000,
                    )

                delay = self.calculate_delay(attempt)
                total_delay += delay
                logger.warning(
                    f"Attempt {attempt + 1}/{self.max_attempts} failed, "
                    f"retrying in {delay * 1000:.0f}ms",
                    error=str(e),
                    **context,
                )
                if on_retry:
                    on_retry(RetryAttempt(index=attempt, error=e, delay=delay))

                await asyncio.sleep(delay)
                continue

            if attempt > 0:
                logger.info("Succeeded after retries", retries=attempt, **context)
            return RetryResult(
                success=True,
                value=value,
                attempts=attempt + 1,
                total_delay_ms=total_delay * 1000,
            )

        raise AssertionError("unreachable")

    async def run(
        self,
        attempt_fn: Callable[[int], Awaitable[T]],
        context: dict[str, Any] | None = None,
        on_retry: Callable[[RetryAttempt], None] | None = None,
    ) -> T:
        """Like ``execute`` but returns the value or raises the final error unchanged."""
        result = await self.execute(attempt_fn, context, on_retry)
        if result.success:
            return result.value
        raise result.error  # type: ignore[misc]


async def with_retry(
    attempt_fn: Callable[[int], Awaitable[T]],
    config: RetryConfig | None = None,
    on_retry: Callable[[RetryAttempt], None] | None = None,
) -> T:
    """Run an attempt function under a one-off retry policy."""
    return await RetryPolicy(config).run(attempt_fn, on_retry=on_retry)
