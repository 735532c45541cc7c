"""
Core module
===========
Resilience primitives for outbound calls

- circuit_breaker.py: CLOSED / OPEN / HALF_OPEN state machine
- rate_limiter.py: minimum interval + exponential backoff retries
- resilient_client.py: breaker around limiter, one instance per dependency
"""

from .circuit_breaker import CircuitBreaker, CircuitState
from .rate_limiter import RateLimitConfig, RateLimiter
from .resilient_client import CircuitBreakerConfig, ResilienceConfig, ResilientClient

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "RateLimitConfig",
    "RateLimiter",
    "ResilienceConfig",
    "ResilientClient",
]
