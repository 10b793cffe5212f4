"""
Request metrics for the orchestrator.

Counts terminal outcomes and keeps a rolling latency window.
"""

from __future__ import annotations

import statistics
from collections import deque
from dataclasses import dataclass, field
from typing import Any

DEFAULT_LATENCY_WINDOW = 100


@dataclass
class MetricsSnapshot:
    """Point-in-time view of orchestrator metrics.

    Attributes:
        total_requests: Requests that reached a terminal outcome
        successful_requests: Requests that resolved with a result
        failed_requests: Requests that raised
        retried_requests: Requests that needed more than one attempt
        average_latency_ms: Mean over the rolling latency window
        latency_samples_ms: Rolling latency window, oldest first
        scheduler: Scheduler status, if attached
        rate_window: Rate window status, if attached
        deadline: Deadline guard status, if attached
    """

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    retried_requests: int = 0
    average_latency_ms: float = 0.0
    latency_samples_ms: list[float] = field(default_factory=list)
    scheduler: dict[str, Any] | None = None
    rate_window: dict[str, Any] | None = None
    deadline: dict[str, Any] | None = None

    @property
    def error_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.failed_requests / self.total_requests

    @property
    def latency_p50_ms(self) -> float:
        if not self.latency_samples_ms:
            return 0.0
        return statistics.median(self.latency_samples_ms)

    @property
    def latency_p90_ms(self) -> float:
        if len(self.latency_samples_ms) < 2:
            return self.latency_p50_ms
        return statistics.quantiles(self.latency_samples_ms, n=10)[-1]

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary."""
        result: dict[str, Any] = {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "retried_requests": self.retried_requests,
            "average_latency_ms": self.average_latency_ms,
            "error_rate": self.error_rate,
            "latency_p50_ms": self.latency_p50_ms,
            "latency_p90_ms": self.latency_p90_ms,
        }
        for name in ("scheduler", "rate_window", "deadline"):
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        return result


class RequestMetrics:
    """Aggregate counters updated once per settled request.

    Example:
        >>> metrics = RequestMetrics()
        >>> metrics.record(latency_ms=120.0, success=True)
        >>> metrics.snapshot().average_latency_ms
        120.0
    """

    def __init__(self, window: int = DEFAULT_LATENCY_WINDOW) -> None:
        if window <= 0:
            raise ValueError("window must be positive")
        self._window = window
        self.reset()

    def reset(self) -> None:
        """Clear all counters and samples."""
        self._total = 0
        self._successful = 0
        self._failed = 0
        self._retried = 0
        self._samples: deque[float] = deque(maxlen=self._window)
        self._average = 0.0

    def record(self, latency_ms: float, success: bool, attempts: int = 1) -> None:
        """Record one terminal request outcome.

        Args:
            latency_ms: End-to-end latency of the request
            success: Whether the request resolved with a result
            attempts: Number of attempts the request used
        """
        self._total += 1
        if success:
            self._successful += 1
        else:
            self._failed += 1
        if attempts > 1:
            self._retried += 1

        self._samples.append(latency_ms)
        self._average = round(sum(self._samples) / len(self._samples), 3)

    @property
    def average_latency_ms(self) -> float:
        return self._average

    @property
    def total_requests(self) -> int:
        return self._total

    def snapshot(self) -> MetricsSnapshot:
        """Get a copy of the current counters."""
        return MetricsSnapshot(
            total_requests=self._total,
            successful_requests=self._successful,
            failed_requests=self._failed,
            retried_requests=self._retried,
            average_latency_ms=self._average,
            latency_samples_ms=list(self._samples),
        )
