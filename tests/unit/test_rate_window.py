"""Tests for the sliding-window rate limiter."""

import asyncio
import time

import pytest

from request_governor.errors import QueueCleared, RateLimitExceeded
from request_governor.resilience import RateWindow, RateWindowConfig


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _timed(starts: list, name: str, delay: float = 0.0):
    async def run() -> str:
        starts.append((name, time.monotonic()))
        if delay:
            await asyncio.sleep(delay)
        return name

    return run


class TestRateWindowConfig:
    """Tests for RateWindowConfig."""

    def test_defaults(self) -> None:
        config = RateWindowConfig()
        assert config.max_requests == 10
        assert config.time_window_ms == 1000

    def test_presets(self) -> None:
        assert RateWindowConfig.per_second(5).time_window_ms == 1000
        assert RateWindowConfig.per_minute(60).time_window_ms == 60_000
        assert RateWindowConfig.unlimited().max_requests == 0

    def test_validation(self) -> None:
        with pytest.raises(ValueError):
            RateWindowConfig(max_requests=-1)
        with pytest.raises(ValueError):
            RateWindowConfig(time_window_ms=0)

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GOVERNOR_MAX_REQUESTS", "3")
        monkeypatch.setenv("GOVERNOR_TIME_WINDOW_MS", "250")
        config = RateWindowConfig.from_env()
        assert config.max_requests == 3
        assert config.time_window_ms == 250


class TestRateWindow:
    """Tests for RateWindow."""

    @pytest.mark.asyncio
    async def test_third_request_waits_for_window(self) -> None:
        """Two admissions per window; the third starts once the first ages out."""
        window = RateWindow(RateWindowConfig(max_requests=2, time_window_ms=200))
        starts: list = []

        results = await asyncio.gather(
            *(window.throttle(_timed(starts, name)) for name in ("a", "b", "c"))
        )

        assert results == ["a", "b", "c"]
        times = dict(starts)
        assert times["b"] - times["a"] < 0.1
        assert times["c"] - times["a"] >= 0.18

    @pytest.mark.asyncio
    async def test_no_wait_raises(self) -> None:
        clock = FakeClock()
        window = RateWindow(RateWindowConfig(max_requests=1, time_window_ms=1000), clock)

        async def op() -> str:
            return "ok"

        assert await window.throttle(op) == "ok"

        clock.now = 0.25
        with pytest.raises(RateLimitExceeded) as exc_info:
            await window.throttle(op, wait=False)
        assert exc_info.value.wait_time == pytest.approx(0.75)
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_get_wait_time(self) -> None:
        clock = FakeClock()
        window = RateWindow(RateWindowConfig(max_requests=1, time_window_ms=1000), clock)

        async def op() -> None:
            return None

        assert window.get_wait_time() == 0.0
        await window.throttle(op)

        clock.now = 0.4
        assert window.get_wait_time() == pytest.approx(0.6)

        clock.now = 1.0
        assert window.get_wait_time() == 0.0
        assert window.status().requests_in_window == 0

    @pytest.mark.asyncio
    async def test_waiters_admitted_by_priority(self) -> None:
        window = RateWindow(RateWindowConfig(max_requests=1, time_window_ms=100))
        starts: list = []

        first = asyncio.create_task(window.throttle(_timed(starts, "first")))
        await asyncio.sleep(0)
        low = asyncio.create_task(window.throttle(_timed(starts, "low"), priority=1))
        await asyncio.sleep(0)
        high = asyncio.create_task(window.throttle(_timed(starts, "high"), priority=5))

        await asyncio.gather(first, low, high)
        assert [name for name, _ in starts] == ["first", "high", "low"]

    @pytest.mark.asyncio
    async def test_clear_queue_rejects_waiters(self) -> None:
        window = RateWindow(RateWindowConfig(max_requests=1, time_window_ms=10_000))
        starts: list = []

        await window.throttle(_timed(starts, "admitted"))
        waiters = [
            asyncio.create_task(window.throttle(_timed(starts, f"w{i}"))) for i in range(2)
        ]
        await asyncio.sleep(0.01)
        assert window.queued_requests == 2

        assert window.clear_queue() == 2
        for waiter in waiters:
            with pytest.raises(QueueCleared):
                await waiter

        assert window.queued_requests == 0
        assert [name for name, _ in starts] == ["admitted"]

    @pytest.mark.asyncio
    async def test_cancelled_waiter_is_skipped(self) -> None:
        window = RateWindow(RateWindowConfig(max_requests=1, time_window_ms=100))
        starts: list = []

        await window.throttle(_timed(starts, "admitted"))
        gone = asyncio.create_task(window.throttle(_timed(starts, "gone")))
        kept = asyncio.create_task(window.throttle(_timed(starts, "kept")))
        await asyncio.sleep(0.01)

        gone.cancel()
        with pytest.raises(asyncio.CancelledError):
            await gone

        assert await kept == "kept"
        assert [name for name, _ in starts] == ["admitted", "kept"]

    @pytest.mark.asyncio
    async def test_cancelled_waiters_compacted(self) -> None:
        window = RateWindow(RateWindowConfig(max_requests=1, time_window_ms=60_000))
        starts: list = []

        await window.throttle(_timed(starts, "admitted"))
        waiters = [
            asyncio.create_task(window.throttle(_timed(starts, str(i)))) for i in range(200)
        ]
        await asyncio.sleep(0)
        assert window.queued_requests == 200

        for waiter in waiters[:150]:
            waiter.cancel()
        await asyncio.gather(*waiters[:150], return_exceptions=True)

        assert window.queued_requests == 50
        assert len(window._waiting) < 200

        assert window.clear_queue() == 50
        results = await asyncio.gather(*waiters[150:], return_exceptions=True)
        assert all(isinstance(r, QueueCleared) for r in results)
        assert window.active_requests == 0

    @pytest.mark.asyncio
    async def test_unlimited_admits_everything(self) -> None:
        window = RateWindow(RateWindowConfig.unlimited())
        starts: list = []

        await asyncio.gather(*(window.throttle(_timed(starts, str(i))) for i in range(50)))

        assert len(starts) == 50
        assert window.is_limited is False
        assert window.status().available_slots == -1

    @pytest.mark.asyncio
    async def test_status_tracks_active_and_window(self) -> None:
        clock = FakeClock()
        window = RateWindow(RateWindowConfig(max_requests=3, time_window_ms=1000), clock)
        release = asyncio.Event()

        async def op() -> None:
            await release.wait()

        task = asyncio.create_task(window.throttle(op))
        await asyncio.sleep(0)

        status = window.status()
        assert status.active_requests == 1
        assert status.requests_in_window == 1
        assert status.available_slots == 2
        assert status.is_throttled is False

        release.set()
        await task
        assert window.active_requests == 0

    @pytest.mark.asyncio
    async def test_operation_error_releases_active_slot(self) -> None:
        window = RateWindow(RateWindowConfig(max_requests=5, time_window_ms=1000))

        async def op() -> None:
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            await window.throttle(op)
        assert window.active_requests == 0
