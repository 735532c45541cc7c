"""
RateLimiter unit tests
"""

import asyncio
import time

import pytest

from src.core.rate_limiter import RateLimitConfig, RateLimiter
from src.domain.exceptions import DependencyError, MissingCredentialError


def _fast_config(**overrides):
    values = {"requests_per_second": 1000.0, "retry_attempts": 3, "base_delay": 0.001, "max_delay": 0.004}
    values.update(overrides)
    return RateLimitConfig(**values)


class TestRateLimitConfig:
    def test_defaults(self):
        config = RateLimitConfig()
        assert config.requests_per_second == 1.0
        assert config.retry_attempts == 3
        assert config.base_delay == 1.0
        assert config.max_delay == 10.0

    def test_min_interval(self):
        assert RateLimitConfig(requests_per_second=4).min_interval == 0.25


class TestSpacing:
    """Minimum interval between dispatches"""

    @pytest.mark.asyncio
    async def test_consecutive_calls_are_spaced(self):
        limiter = RateLimiter("test", _fast_config(requests_per_second=20))  # 50ms
        stamps = []

        async def operation():
            stamps.append(time.monotonic())

        for _ in range(3):
            await limiter.execute_with_limit(operation)

        gaps = [b - a for a, b in zip(stamps, stamps[1:])]
        assert all(gap >= 0.045 for gap in gaps)

    @pytest.mark.asyncio
    async def test_concurrent_calls_are_spaced(self):
        limiter = RateLimiter("test", _fast_config(requests_per_second=20))
        stamps = []

        async def operation():
            stamps.append(time.monotonic())

        await asyncio.gather(*(limiter.execute_with_limit(operation) for _ in range(4)))

        stamps.sort()
        gaps = [b - a for a, b in zip(stamps, stamps[1:])]
        assert all(gap >= 0.045 for gap in gaps)
        assert limiter.get_stats()["rate_limited_requests"] == 3

    @pytest.mark.asyncio
    async def test_first_call_not_delayed(self):
        limiter = RateLimiter("test", _fast_config(requests_per_second=1))

        async def operation():
            return 42

        start = time.monotonic()
        assert await limiter.execute_with_limit(operation) == 42
        assert time.monotonic() - start < 0.5
        assert limiter.get_stats()["rate_limited_requests"] == 0


class TestRetry:
    """Exponential backoff"""

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self):
        limiter = RateLimiter("test", _fast_config())
        attempts = []

        async def operation():
            attempts.append(1)
            if len(attempts) < 3:
                raise DependencyError("flaky")
            return "done"

        assert await limiter.execute_with_limit(operation) == "done"
        assert len(attempts) == 3
        stats = limiter.get_stats()
        assert stats["successful_requests"] == 1
        assert stats["failed_requests"] == 0

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_last_error(self):
        limiter = RateLimiter("test", _fast_config(retry_attempts=2))
        attempts = []

        async def operation():
            attempts.append(1)
            raise DependencyError(f"failure {len(attempts)}")

        with pytest.raises(DependencyError, match="failure 3"):
            await limiter.execute_with_limit(operation)
        assert len(attempts) == 3
        assert limiter.get_stats()["failed_requests"] == 1

    @pytest.mark.asyncio
    async def test_non_retryable_error_is_not_retried(self):
        limiter = RateLimiter("test", _fast_config())
        attempts = []

        async def operation():
            attempts.append(1)
            raise MissingCredentialError("OPENAI_API_KEY", dependency="reasoning")

        with pytest.raises(MissingCredentialError):
            await limiter.execute_with_limit(operation)
        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_backoff_delay_is_capped(self):
        limiter = RateLimiter(
            "test", _fast_config(retry_attempts=3, base_delay=0.01, max_delay=0.02)
        )

        async def operation():
            raise DependencyError("down")

        start = time.monotonic()
        with pytest.raises(DependencyError):
            await limiter.execute_with_limit(operation)
        elapsed = time.monotonic() - start
        # 0.01 + 0.02 + 0.02 (capped)
        assert elapsed >= 0.045
        assert elapsed < 1.0


class TestStats:
    @pytest.mark.asyncio
    async def test_counters_and_reset(self):
        limiter = RateLimiter("stats", _fast_config())

        async def ok():
            return 1

        await limiter.execute_with_limit(ok)
        await limiter.execute_with_limit(ok)

        stats = limiter.get_stats()
        assert stats["name"] == "stats"
        assert stats["total_requests"] == 2
        assert stats["successful_requests"] == 2
        assert stats["average_wait_time"] >= 0

        limiter.reset_stats()
        stats = limiter.get_stats()
        assert stats["total_requests"] == 0
        assert stats["average_wait_time"] == 0.0
