#!/usr/bin/env python3
"""
Governor performance benchmarks.

Measures the overhead each pipeline stage adds to a no-op operation.
"""

import asyncio
import time
from typing import Any

from request_governor.client import Orchestrator
from request_governor.config import GovernorConfig
from request_governor.resilience import (
    CancelToken,
    DeadlineGuard,
    PriorityScheduler,
    RateWindow,
    RateWindowConfig,
    RetryConfig,
    RetryPolicy,
    SchedulerConfig,
)


async def noop_operation(token: CancelToken | None = None) -> str:
    """No-op operation for overhead measurement."""
    return "result"


def _result(name: str, iterations: int, elapsed: float, **extra: Any) -> dict[str, Any]:
    return {
        "name": name,
        "iterations": iterations,
        "elapsed_seconds": elapsed,
        "throughput_ops": iterations / elapsed,
        "latency_us": (elapsed / iterations) * 1_000_000,
        **extra,
    }


async def benchmark_baseline(iterations: int = 10000) -> dict[str, Any]:
    """Benchmark baseline async operation."""
    start = time.perf_counter()
    for _ in range(iterations):
        await noop_operation()
    return _result("Baseline (no governor)", iterations, time.perf_counter() - start)


async def benchmark_retry_policy(iterations: int = 10000) -> dict[str, Any]:
    """Benchmark retry policy overhead (no retries triggered)."""
    policy = RetryPolicy(RetryConfig(max_retries=3))

    async def attempt(index: int) -> str:
        return await noop_operation()

    start = time.perf_counter()
    for _ in range(iterations):
        await policy.run(attempt)
    return _result("RetryPolicy (no retries)", iterations, time.perf_counter() - start)


async def benchmark_rate_window(iterations: int = 10000) -> dict[str, Any]:
    """Benchmark rate window admission with a limit that is never reached."""
    window = RateWindow(RateWindowConfig(max_requests=iterations + 1, time_window_ms=60_000))

    start = time.perf_counter()
    for _ in range(iterations):
        await window.throttle(noop_operation)
    return _result("RateWindow (under limit)", iterations, time.perf_counter() - start)


async def benchmark_deadline_guard(iterations: int = 10000) -> dict[str, Any]:
    """Benchmark deadline guard overhead (timer armed and released)."""
    guard = DeadlineGuard()

    start = time.perf_counter()
    for _ in range(iterations):
        await guard.guard(noop_operation, timeout_ms=1000)
    return _result("DeadlineGuard", iterations, time.perf_counter() - start)


async def benchmark_scheduler(
    concurrency: int = 10, iterations: int = 10000
) -> dict[str, Any]:
    """Benchmark scheduler throughput with many queued jobs."""
    scheduler = PriorityScheduler(SchedulerConfig(max_concurrent=concurrency))

    start = time.perf_counter()
    jobs = [scheduler.submit(noop_operation, priority=i % 5) for i in range(iterations)]
    await asyncio.gather(*(job.future for job in jobs))
    return _result(
        f"PriorityScheduler ({concurrency} slots)",
        iterations,
        time.perf_counter() - start,
        peak_running=scheduler.peak_running,
    )


async def benchmark_orchestrator(
    config: GovernorConfig, name: str, iterations: int = 2000
) -> dict[str, Any]:
    """Benchmark a full orchestrator batch."""
    async with Orchestrator(config) as orch:
        start = time.perf_counter()
        await orch.settle_all([noop_operation] * iterations)
        elapsed = time.perf_counter() - start
    return _result(name, iterations, elapsed)


async def run_benchmarks() -> None:
    """Run all benchmarks and print results."""
    print("=" * 60)
    print("Governor Benchmarks")
    print("=" * 60)
    print()

    results = [
        await benchmark_baseline(),
        await benchmark_retry_policy(),
        await benchmark_rate_window(),
        await benchmark_deadline_guard(),
        await benchmark_scheduler(),
    ]

    baseline_latency = results[0]["latency_us"]
    for result in results:
        overhead = ""
        if result is not results[0]:
            overhead_us = result["latency_us"] - baseline_latency
            overhead = f" (+{overhead_us:.2f}µs)"

        print(f"{result['name']}:")
        print(f"  Throughput: {result['throughput_ops']:.0f} ops/sec")
        print(f"  Latency: {result['latency_us']:.2f} µs/op{overhead}")
        print()

    print("Orchestrator batches:")
    for name, config in [
        ("minimal", GovernorConfig.minimal()),
        ("unlimited", GovernorConfig.from_dict({"maxConcurrent": 0, "maxRequests": 0})),
    ]:
        result = await benchmark_orchestrator(config, name)
        print(f"  {name}: {result['throughput_ops']:.0f} requests/sec")


if __name__ == "__main__":
    asyncio.run(run_benchmarks())
