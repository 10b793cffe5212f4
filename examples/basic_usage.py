#!/usr/bin/env python3
"""
Governed requests example.

This example demonstrates how to run async operations through the governor:
- Priority scheduling with a concurrency cap
- Sliding-window rate limiting
- Retry with exponential backoff
- Per-attempt deadlines and cancellation
- Batch helpers and lifecycle events

Usage:
    python examples/basic_usage.py
"""

import asyncio
import random

from request_governor import (
    CancelToken,
    GovernorConfig,
    GovernorTimeoutError,
    Orchestrator,
    Request,
    RequestOptions,
    UpstreamFailure,
)
from request_governor.telemetry import GovernorLogger, LogLevel


async def fake_upstream(name: str, token: CancelToken) -> str:
    """Pretend to call a remote service, honoring cancellation."""
    try:
        await asyncio.wait_for(token.wait(), timeout=random.uniform(0.05, 0.2))
    except asyncio.TimeoutError:
        pass
    token.raise_if_cancelled()
    if random.random() < 0.2:
        raise UpstreamFailure(f"{name} is overloaded", status_code=503)
    return f"{name}: ok"


async def single_requests(orch: Orchestrator) -> None:
    """Run a few requests one at a time."""
    print("Single requests...")

    result = await orch.request(lambda token: fake_upstream("users", token), priority=5)
    print(f"  {result}")

    try:
        await orch.request(
            lambda token: fake_upstream("reports", token), timeout_ms=10, retry=False
        )
    except GovernorTimeoutError as e:
        print(f"  reports timed out after {e.timeout_ms:g}ms")


async def batch_requests(orch: Orchestrator) -> None:
    """Run a batch and report every outcome."""
    print("\nBatch of 8 requests...")

    requests = [
        Request(
            lambda token, i=i: fake_upstream(f"item-{i}", token),
            RequestOptions(priority=i % 3, metadata={"item": i}),
        )
        for i in range(8)
    ]
    result = await orch.settle_all(requests)

    print(f"  succeeded: {result.successful_count}, failed: {result.failed_count}")
    for index, error in result.get_errors():
        print(f"  item-{index} failed: {error}")

    fastest = await orch.race([lambda token, n=n: fake_upstream(n, token) for n in "abc"])
    print(f"  fastest mirror -> {fastest}")


async def main() -> None:
    GovernorLogger.configure(level=LogLevel.WARNING)

    config = GovernorConfig.from_dict(
        {
            "maxConcurrent": 3,
            "maxRequests": 5,
            "timeWindow": 1000,
            "maxRetries": 2,
            "initialDelay": 100,
            "timeout": 2000,
        }
    )

    def on_event(event) -> None:
        if event.kind == "request_retry":
            print(f"  retrying {event.request_id} in {event.delay_ms:.0f}ms")

    async with Orchestrator(config, on_event=on_event) as orch:
        await single_requests(orch)
        await batch_requests(orch)

        metrics = orch.get_metrics()
        print("\nMetrics:")
        for key, value in metrics.to_dict().items():
            if not isinstance(value, dict):
                print(f"  {key}: {value}")


if __name__ == "__main__":
    asyncio.run(main())
