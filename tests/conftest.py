"""Root pytest fixtures for request-governor tests."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import pytest
import pytest_asyncio

from request_governor.config import GovernorConfig
from request_governor.client import Orchestrator
from request_governor.resilience import (
    DeadlineConfig,
    RateWindowConfig,
    RetryConfig,
    SchedulerConfig,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from request_governor.resilience import CancelToken


@pytest.fixture
def fast_config() -> GovernorConfig:
    """Configuration with millisecond retry delays and no rate limit."""
    return GovernorConfig(
        scheduler=SchedulerConfig(max_concurrent=2),
        rate_window=RateWindowConfig.unlimited(),
        retry=RetryConfig(max_retries=2, initial_delay_ms=1, max_delay_ms=10),
        deadline=DeadlineConfig(default_timeout_ms=1000),
    )


@pytest.fixture
def events() -> list[Any]:
    """Collects every lifecycle event emitted during a test."""
    return []


@pytest_asyncio.fixture
async def orchestrator(
    fast_config: GovernorConfig, events: list[Any]
) -> AsyncIterator[Orchestrator]:
    orch = Orchestrator(fast_config, on_event=events.append)
    yield orch
    await orch.aclose()


@pytest.fixture
def make_operation() -> Callable[..., Any]:
    """Build operations that honor their CancelToken.

    The operation records its name in ``log`` when it starts, waits up to
    ``delay`` seconds (stopping early if cancelled), then raises ``error``
    or returns ``value``.
    """

    def factory(
        value: Any = None,
        *,
        delay: float = 0.0,
        error: Exception | None = None,
        log: list[Any] | None = None,
        name: Any = None,
    ) -> Callable[[CancelToken], Any]:
        async def operation(token: CancelToken) -> Any:
            if log is not None:
                log.append(name)
            if delay:
                try:
                    await asyncio.wait_for(token.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    pass
                else:
                    token.raise_if_cancelled()
            if error is not None:
                raise error
            return value

        return operation

    return factory


def kinds(events: list[Any]) -> list[str]:
    """Event kinds in emission order."""
    return [e.kind for e in events]


@pytest.fixture
def event_kinds() -> Callable[[list[Any]], list[str]]:
    return kinds
