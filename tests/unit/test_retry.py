"""Tests for the retry policy."""

import random

import httpx
import pytest

from request_governor.errors import (
    AbortError,
    GovernorTimeoutError,
    JobCancelled,
    UpstreamFailure,
)
from request_governor.resilience import (
    RetryAttempt,
    RetryConfig,
    RetryPolicy,
    with_retry,
)


class StatusError(Exception):
    def __init__(self, status: int) -> None:
        super().__init__(f"status {status}")
        self.status = status


def _fast(max_retries: int = 2) -> RetryConfig:
    return RetryConfig(max_retries=max_retries, initial_delay_ms=1, max_delay_ms=5)


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_defaults(self) -> None:
        config = RetryConfig()
        assert config.max_retries == 3
        assert config.initial_delay_ms == 1000
        assert config.max_delay_ms == 30000
        assert config.backoff_multiplier == 2.0
        assert config.retryable_statuses == {408, 429, 500, 502, 503, 504}

    def test_no_retry(self) -> None:
        assert RetryConfig.no_retry().max_retries == 0

    def test_validation(self) -> None:
        with pytest.raises(ValueError):
            RetryConfig(max_retries=-1)
        with pytest.raises(ValueError):
            RetryConfig(backoff_multiplier=0.5)

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GOVERNOR_MAX_RETRIES", "5")
        monkeypatch.setenv("GOVERNOR_RETRYABLE_STATUSES", "503, 504")
        config = RetryConfig.from_env()
        assert config.max_retries == 5
        assert config.retryable_statuses == {503, 504}


class TestCalculateDelay:
    """Tests for backoff delay calculation."""

    def test_delay_within_jitter_bounds(self) -> None:
        policy = RetryPolicy(RetryConfig())
        for attempt in range(6):
            base_ms = min(1000 * 2**attempt, 30000)
            delay_ms = policy.calculate_delay(attempt) * 1000
            assert base_ms - 1e-6 <= delay_ms <= min(base_ms * 1.3, 30000) + 1e-6

    def test_delay_extremes(self, monkeypatch: pytest.MonkeyPatch) -> None:
        policy = RetryPolicy(RetryConfig())

        monkeypatch.setattr(random, "uniform", lambda a, b: a)
        assert [policy.calculate_delay(k) for k in range(3)] == [1.0, 2.0, 4.0]

        monkeypatch.setattr(random, "uniform", lambda a, b: b)
        assert policy.calculate_delay(0) == pytest.approx(1.3)
        assert policy.calculate_delay(2) == pytest.approx(5.2)

    def test_delay_capped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(random, "uniform", lambda a, b: b)
        policy = RetryPolicy(RetryConfig(max_delay_ms=3000))
        assert policy.calculate_delay(1) == pytest.approx(2.6)
        assert policy.calculate_delay(2) == 3.0
        assert policy.calculate_delay(10) == 3.0


class TestRetryPolicy:
    """Tests for RetryPolicy.execute / run."""

    @pytest.mark.asyncio
    async def test_retryable_status_exhausts_attempts(self) -> None:
        policy = RetryPolicy(_fast(max_retries=2))
        seen: list[int] = []

        async def attempt(index: int) -> None:
            seen.append(index)
            raise StatusError(500)

        result = await policy.execute(attempt)

        assert seen == [0, 1, 2]
        assert result.success is False
        assert result.attempts == 3
        assert isinstance(result.error, StatusError)

    @pytest.mark.asyncio
    async def test_backoff_delays_between_attempts(self) -> None:
        """Status 500 with 2 retries: delays of 100-130ms then 200-260ms."""
        policy = RetryPolicy(
            RetryConfig(max_retries=2, initial_delay_ms=100, backoff_multiplier=2)
        )
        retries: list[RetryAttempt] = []

        async def attempt(index: int) -> None:
            raise StatusError(500)

        result = await policy.execute(attempt, on_retry=retries.append)

        assert result.attempts == 3
        assert [r.index for r in retries] == [0, 1]
        assert 0.1 <= retries[0].delay <= 0.13
        assert 0.2 <= retries[1].delay <= 0.26

    @pytest.mark.asyncio
    async def test_non_retryable_status_fails_once(self) -> None:
        policy = RetryPolicy(_fast())
        calls = 0

        async def attempt(index: int) -> None:
            nonlocal calls
            calls += 1
            raise UpstreamFailure("not found", status_code=404)

        result = await policy.execute(attempt)
        assert calls == 1
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_error_without_status_not_retried(self) -> None:
        policy = RetryPolicy(_fast())
        calls = 0

        async def attempt(index: int) -> None:
            nonlocal calls
            calls += 1
            raise ValueError("bad payload")

        with pytest.raises(ValueError):
            await policy.run(attempt)
        assert calls == 1

    @pytest.mark.asyncio
    async def test_success_after_retries(self) -> None:
        policy = RetryPolicy(_fast(max_retries=3))
        retries: list[RetryAttempt] = []

        async def attempt(index: int) -> str:
            if index < 2:
                raise StatusError(503)
            return "recovered"

        result = await policy.execute(attempt, on_retry=retries.append)

        assert result.success is True
        assert result.value == "recovered"
        assert result.attempts == 3
        assert [r.index for r in retries] == [0, 1]
        assert all(0.001 <= r.delay <= 0.005 for r in retries)
        assert result.total_delay_ms == pytest.approx(sum(r.delay for r in retries) * 1000)

    @pytest.mark.asyncio
    async def test_run_raises_final_error_unchanged(self) -> None:
        policy = RetryPolicy(_fast(max_retries=1))
        error = StatusError(502)

        async def attempt(index: int) -> None:
            raise error

        with pytest.raises(StatusError) as exc_info:
            await policy.run(attempt)
        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_timeout_is_retryable(self) -> None:
        policy = RetryPolicy(_fast(max_retries=1))
        calls = 0

        async def attempt(index: int) -> None:
            nonlocal calls
            calls += 1
            raise GovernorTimeoutError(50)

        with pytest.raises(GovernorTimeoutError):
            await policy.run(attempt)
        assert calls == 2

    def test_cancellation_never_retryable(self) -> None:
        policy = RetryPolicy(RetryConfig(retryable_statuses={0, 408, 500}))

        assert policy.is_retryable(AbortError()) is False
        assert policy.is_retryable(JobCancelled("job_1")) is False

    def test_httpx_status_error_retryable(self) -> None:
        policy = RetryPolicy()
        request = httpx.Request("GET", "https://api.example.com/items")

        error = httpx.HTTPStatusError(
            "service unavailable",
            request=request,
            response=httpx.Response(503, request=request),
        )
        assert policy.is_retryable(error) is True

    def test_custom_status_set(self) -> None:
        policy = RetryPolicy(RetryConfig(retryable_statuses={418}))
        assert policy.is_retryable(StatusError(418)) is True
        assert policy.is_retryable(StatusError(500)) is False

    @pytest.mark.asyncio
    async def test_no_retry_config(self) -> None:
        policy = RetryPolicy(RetryConfig.no_retry())
        calls = 0

        async def attempt(index: int) -> None:
            nonlocal calls
            calls += 1
            raise StatusError(500)

        with pytest.raises(StatusError):
            await policy.run(attempt)
        assert calls == 1
        assert policy.max_attempts == 1

    @pytest.mark.asyncio
    async def test_with_retry(self) -> None:
        calls = 0

        async def attempt(index: int) -> int:
            nonlocal calls
            calls += 1
            if index == 0:
                raise StatusError(429)
            return index

        assert await with_retry(attempt, _fast()) == 1
        assert calls == 2
