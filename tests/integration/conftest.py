"""
Integration test helper utilities.

Shared fixtures for tests that drive the whole pipeline.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest_asyncio

from request_governor.client import Orchestrator
from request_governor.config import GovernorConfig
from request_governor.transport import GovernedHttpClient, HttpTransport

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

BASE_URL = "https://api.example.com"


def http_config(**overrides: object) -> GovernorConfig:
    """Pipeline settings for HTTP tests: fast retries, no rate limit."""
    options: dict[str, object] = {
        "maxConcurrent": 4,
        "maxRequests": 0,
        "maxRetries": 2,
        "initialDelay": 1,
        "maxDelay": 5,
        "timeout": 1000,
    }
    options.update(overrides)
    return GovernorConfig.from_dict(options)


@pytest_asyncio.fixture
async def http_client() -> AsyncIterator[GovernedHttpClient]:
    async with GovernedHttpClient(
        Orchestrator(http_config(), name="http"),
        HttpTransport(BASE_URL, headers={"Authorization": "Bearer test-token"}),
    ) as client:
        yield client
