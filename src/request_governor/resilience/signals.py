"""
Status snapshots for the pipeline components.

Read-only views that are safe to poll at any frequency.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class SchedulerSnapshot:
    """Snapshot of priority scheduler state.

    Attributes:
        queued: Jobs waiting for a concurrency slot
        running: Jobs currently running
        max_concurrent: Concurrency cap (0 = unlimited)
        paused: Whether dispatch is paused
        stats: Per-status totals since the last reset
        queued_items: Waiting jobs in dispatch order
    """

    queued: int
    running: int
    max_concurrent: int
    paused: bool = False
    stats: dict[str, int] = field(default_factory=dict)
    queued_items: list[dict[str, Any]] = field(default_factory=list)

    @property
    def utilization(self) -> float:
        """Get utilization ratio (0.0 to 1.0)."""
        if self.max_concurrent == 0:
            return 0.0
        return self.running / self.max_concurrent

    def to_dict(self) -> dict[str, Any]:
        return {
            "queued": self.queued,
            "running": self.running,
            "max_concurrent": self.max_concurrent,
            "paused": self.paused,
            "utilization": self.utilization,
            "stats": dict(self.stats),
            "queued_items": [dict(item) for item in self.queued_items],
        }


@dataclass
class RateWindowSnapshot:
    """Snapshot of rate window state.

    Attributes:
        active_requests: Admitted operations still running
        queued_requests: Requests waiting for admission
        requests_in_window: Admissions inside the current window
        available_slots: Admissions possible right now
        next_available_in: Seconds until the next admission is possible
    """

    active_requests: int
    queued_requests: int
    requests_in_window: int
    available_slots: int
    next_available_in: float

    @property
    def is_throttled(self) -> bool:
        return self.available_slots == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "active_requests": self.active_requests,
            "queued_requests": self.queued_requests,
            "requests_in_window": self.requests_in_window,
            "available_slots": self.available_slots,
            "next_available_in": self.next_available_in,
            "is_throttled": self.is_throttled,
        }


@dataclass
class DeadlineSnapshot:
    """Snapshot of active deadline guards."""

    active_requests: int
    requests: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "active_requests": self.active_requests,
            "requests": [dict(r) for r in self.requests],
        }
