"""
ResilientClient unit tests
"""

import pytest

from src.core.circuit_breaker import CircuitState
from src.core.rate_limiter import RateLimitConfig
from src.core.resilient_client import (
    GEOCODING_RESILIENCE,
    MARKET_DATA_RESILIENCE,
    CircuitBreakerConfig,
    ResilienceConfig,
    ResilientClient,
)
from src.domain.exceptions import CircuitOpenError, DependencyError


def _config(failure_threshold=2, retry_attempts=1):
    return ResilienceConfig(
        rate_limit=RateLimitConfig(
            requests_per_second=1000, retry_attempts=retry_attempts, base_delay=0.001, max_delay=0.002
        ),
        circuit_breaker=CircuitBreakerConfig(failure_threshold=failure_threshold, reset_timeout=60),
    )


class TestDefaults:
    def test_market_data_defaults(self):
        limit = MARKET_DATA_RESILIENCE.rate_limit
        assert (limit.requests_per_second, limit.retry_attempts) == (1.0, 3)
        assert (limit.base_delay, limit.max_delay) == (1.0, 10.0)

    def test_geocoding_defaults(self):
        limit = GEOCODING_RESILIENCE.rate_limit
        assert (limit.requests_per_second, limit.retry_attempts) == (2.0, 2)
        assert (limit.base_delay, limit.max_delay) == (0.5, 5.0)

    def test_breaker_defaults(self):
        breaker = MARKET_DATA_RESILIENCE.circuit_breaker
        assert breaker.failure_threshold == 5
        assert breaker.reset_timeout == 60.0


class TestResilientClient:
    @pytest.mark.asyncio
    async def test_call_passes_through(self):
        client = ResilientClient("test", _config())

        async def operation():
            return {"ok": True}

        assert await client.call(operation) == {"ok": True}
        stats = client.get_stats()
        assert stats["rate_limiter"]["successful_requests"] == 1
        assert stats["circuit_breaker"]["state"] == "closed"

    @pytest.mark.asyncio
    async def test_retried_failure_counts_once_against_breaker(self):
        client = ResilientClient("test", _config(failure_threshold=2, retry_attempts=2))
        attempts = []

        async def operation():
            attempts.append(1)
            raise DependencyError("down")

        with pytest.raises(DependencyError):
            await client.call(operation)
        assert len(attempts) == 3
        assert client.circuit_breaker.failure_count == 1
        assert client.circuit_breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_opens_and_short_circuits(self):
        client = ResilientClient("test", _config(failure_threshold=2, retry_attempts=0))
        attempts = []

        async def operation():
            attempts.append(1)
            raise DependencyError("down")

        for _ in range(2):
            with pytest.raises(DependencyError):
                await client.call(operation)

        with pytest.raises(CircuitOpenError):
            await client.call(operation)
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_reset_closes_breaker_and_clears_stats(self):
        client = ResilientClient("test", _config(failure_threshold=1, retry_attempts=0))

        async def operation():
            raise DependencyError("down")

        with pytest.raises(DependencyError):
            await client.call(operation)
        assert client.circuit_breaker.state == CircuitState.OPEN

        client.reset()
        assert client.circuit_breaker.state == CircuitState.CLOSED
        assert client.get_stats()["rate_limiter"]["total_requests"] == 0

    @pytest.mark.asyncio
    async def test_reset_stats_keeps_breaker_state(self):
        client = ResilientClient("test", _config(failure_threshold=1, retry_attempts=0))

        async def operation():
            raise DependencyError("down")

        with pytest.raises(DependencyError):
            await client.call(operation)

        client.reset_stats()
        assert client.get_stats()["rate_limiter"]["total_requests"] == 0
        assert client.circuit_breaker.state == CircuitState.OPEN

    def test_independent_instances(self):
        geo = ResilientClient("geocoding", GEOCODING_RESILIENCE)
        market = ResilientClient("market_data", MARKET_DATA_RESILIENCE)
        assert geo.rate_limiter is not market.rate_limiter
        assert geo.circuit_breaker is not market.circuit_breaker
        assert geo.get_stats()["name"] == "geocoding"
