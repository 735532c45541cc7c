"""
Resilient Client
================
One instance per external dependency: every call passes the circuit breaker
first, which then invokes the rate-limited (and retried) operation.

A retried-and-still-failing call counts as a single breaker failure.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from src.core.circuit_breaker import CircuitBreaker
from src.core.rate_limiter import RateLimitConfig, RateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Breaker settings (seconds)"""

    failure_threshold: int = 5
    reset_timeout: float = 60.0
    success_threshold: int = 3


@dataclass(frozen=True)
class ResilienceConfig:
    """Combined settings for one dependency"""

    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)


# Defaults per dependency
REASONING_RESILIENCE = ResilienceConfig(
    rate_limit=RateLimitConfig(requests_per_second=2.0, retry_attempts=1, base_delay=1.0, max_delay=10.0),
)
MARKET_DATA_RESILIENCE = ResilienceConfig(
    rate_limit=RateLimitConfig(requests_per_second=1.0, retry_attempts=3, base_delay=1.0, max_delay=10.0),
)
GEOCODING_RESILIENCE = ResilienceConfig(
    rate_limit=RateLimitConfig(requests_per_second=2.0, retry_attempts=2, base_delay=0.5, max_delay=5.0),
)


class ResilientClient:
    """
    Circuit breaker + rate limiter for a single dependency

    Usage:
        client = ResilientClient("geocoding", GEOCODING_RESILIENCE)
        data = await client.call(lambda: http.post(...))
    """

    def __init__(self, name: str, config: ResilienceConfig | None = None):
        self.name = name
        self.config = config or ResilienceConfig()
        breaker_cfg = self.config.circuit_breaker
        self.rate_limiter = RateLimiter(name, self.config.rate_limit)
        self.circuit_breaker = CircuitBreaker(
            name=name,
            failure_threshold=breaker_cfg.failure_threshold,
            reset_timeout=breaker_cfg.reset_timeout,
            success_threshold=breaker_cfg.success_threshold,
        )

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run operation behind the breaker and the limiter"""
        return await self.circuit_breaker.execute(
            lambda: self.rate_limiter.execute_with_limit(operation)
        )

    def get_stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "rate_limiter": self.rate_limiter.get_stats(),
            "circuit_breaker": self.circuit_breaker.get_stats(),
        }

    def reset_stats(self) -> None:
        self.rate_limiter.reset_stats()

    def reset(self) -> None:
        """Clear limiter statistics and force the breaker CLOSED"""
        self.rate_limiter.reset_stats()
        self.circuit_breaker.reset()
        logger.info(f"ResilientClient[{self.name}]: reset")
