"""
Aggregated configuration for the orchestrator.

Options can be given as dataclasses, a mapping (snake_case or the camelCase
names used by JavaScript clients), a YAML file or environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from request_governor.resilience.deadline import DeadlineConfig
from request_governor.resilience.rate_window import RateWindowConfig
from request_governor.resilience.retry import RetryConfig
from request_governor.resilience.scheduler import SchedulerConfig

# Accepted option names -> (section, field)
_OPTION_MAP: dict[str, tuple[str, str]] = {
    "max_concurrent": ("scheduler", "max_concurrent"),
    "maxConcurrent": ("scheduler", "max_concurrent"),
    "max_requests": ("rate_window", "max_requests"),
    "maxRequests": ("rate_window", "max_requests"),
    "time_window_ms": ("rate_window", "time_window_ms"),
    "timeWindow": ("rate_window", "time_window_ms"),
    "max_retries": ("retry", "max_retries"),
    "maxRetries": ("retry", "max_retries"),
    "initial_delay_ms": ("retry", "initial_delay_ms"),
    "initialDelay": ("retry", "initial_delay_ms"),
    "max_delay_ms": ("retry", "max_delay_ms"),
    "maxDelay": ("retry", "max_delay_ms"),
    "backoff_multiplier": ("retry", "backoff_multiplier"),
    "backoffMultiplier": ("retry", "backoff_multiplier"),
    "jitter_ratio": ("retry", "jitter_ratio"),
    "retryable_statuses": ("retry", "retryable_statuses"),
    "retryableStatuses": ("retry", "retryable_statuses"),
    "timeout_ms": ("deadline", "default_timeout_ms"),
    "timeout": ("deadline", "default_timeout_ms"),
}


@dataclass
class GovernorConfig:
    """Combined configuration for every pipeline component.

    Attributes:
        scheduler: Concurrency cap
        rate_window: Admissions per rolling window
        retry: Retry tuning
        deadline: Default per-attempt deadline
        latency_window: Number of latency samples kept for metrics
    """

    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    rate_window: RateWindowConfig = field(default_factory=RateWindowConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    deadline: DeadlineConfig = field(default_factory=DeadlineConfig)
    latency_window: int = 100

    @classmethod
    def default(cls) -> GovernorConfig:
        return cls()

    @classmethod
    def minimal(cls) -> GovernorConfig:
        """Single request at a time, no rate limit, no retries."""
        return cls(
            scheduler=SchedulerConfig(max_concurrent=1),
            rate_window=RateWindowConfig.unlimited(),
            retry=RetryConfig.no_retry(),
        )

    @classmethod
    def production(cls) -> GovernorConfig:
        """Conservative settings for talking to shared upstreams."""
        return cls(
            scheduler=SchedulerConfig(max_concurrent=10),
            rate_window=RateWindowConfig.per_second(20),
            retry=RetryConfig(max_retries=3, initial_delay_ms=500, max_delay_ms=15000),
            deadline=DeadlineConfig(default_timeout_ms=15000),
        )

    @classmethod
    def from_dict(cls, options: dict[str, Any]) -> GovernorConfig:
        """Create configuration from a flat options mapping.

        Args:
            options: Mapping using names such as ``max_concurrent`` or ``maxConcurrent``

        Raises:
            ValueError: On unknown option names or invalid values
        """
        sections: dict[str, dict[str, Any]] = {
            "scheduler": {},
            "rate_window": {},
            "retry": {},
            "deadline": {},
        }
        latency_window = 100

        for name, value in options.items():
            if name in ("latency_window", "latencyWindow"):
                latency_window = int(value)
                continue
            if name not in _OPTION_MAP:
                raise ValueError(f"Unknown governor option: {name}")
            section, attr = _OPTION_MAP[name]
            if attr == "retryable_statuses":
                value = {int(s) for s in value}
            sections[section][attr] = value

        return cls(
            scheduler=SchedulerConfig(**sections["scheduler"]),
            rate_window=RateWindowConfig(**sections["rate_window"]),
            retry=RetryConfig(**sections["retry"]),
            deadline=DeadlineConfig(**sections["deadline"]),
            latency_window=latency_window,
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> GovernorConfig:
        """Load configuration from a YAML mapping.

        An optional top-level ``governor`` key is unwrapped.
        """
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Expected a mapping in {path}")
        if isinstance(data.get("governor"), dict):
            data = data["governor"]
        return cls.from_dict(data)

    @classmethod
    def from_env(cls) -> GovernorConfig:
        """Create configuration from ``GOVERNOR_*`` environment variables."""
        return cls(
            scheduler=SchedulerConfig.from_env(),
            rate_window=RateWindowConfig.from_env(),
            retry=RetryConfig.from_env(),
            deadline=DeadlineConfig.from_env(),
            latency_window=int(os.getenv("GOVERNOR_LATENCY_WINDOW", "100")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_concurrent": self.scheduler.max_concurrent,
            "max_requests": self.rate_window.max_requests,
            "time_window_ms": self.rate_window.time_window_ms,
            "max_retries": self.retry.max_retries,
            "initial_delay_ms": self.retry.initial_delay_ms,
            "max_delay_ms": self.retry.max_delay_ms,
            "backoff_multiplier": self.retry.backoff_multiplier,
            "jitter_ratio": self.retry.jitter_ratio,
            "retryable_statuses": sorted(self.retry.retryable_statuses),
            "timeout_ms": self.deadline.default_timeout_ms,
            "latency_window": self.latency_window,
        }
