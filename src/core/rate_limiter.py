"""
Rate Limiter
============
Spaces outbound calls to an external dependency and retries failures
with exponential backoff

- minimum interval between dispatches = 1 / requests_per_second
- retry delay = min(base_delay * 2**attempt, max_delay)
- errors flagged is_retryable=False are re-raised without retry
"""

import asyncio
import logging
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RateLimitConfig:
    """Per-dependency limiter settings (delays in seconds)"""

    requests_per_second: float = 1.0
    retry_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0

    @property
    def min_interval(self) -> float:
        return 1.0 / self.requests_per_second


class RateLimiter:
    """
    Rate limiter with retry

    Dispatch slots are reserved under a lock, so concurrent callers are spaced
    at least min_interval apart even when they race for the same slot.

    Usage:
        limiter = RateLimiter("geocoding", RateLimitConfig(requests_per_second=2))
        rows = await limiter.execute_with_limit(lambda: geocoder.fetch(batch))
    """

    def __init__(self, name: str, config: RateLimitConfig | None = None):
        self.name = name
        self.config = config or RateLimitConfig()
        self._lock = threading.Lock()
        self._last_request_time: float | None = None

        self._total_requests = 0
        self._successful_requests = 0
        self._rate_limited_requests = 0
        self._failed_requests = 0
        self._total_wait_time = 0.0

        logger.debug(
            f"RateLimiter[{name}]: {self.config.requests_per_second} req/s, "
            f"{self.config.retry_attempts} retries"
        )

    async def execute_with_limit(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Wait for a dispatch slot, then run operation with retry

        Raises:
            Exception: the last error once all retry attempts are exhausted
        """
        with self._lock:
            self._total_requests += 1

        try:
            await self._wait_for_slot()
            result = await self._execute_with_retry(operation)
        except Exception:
            with self._lock:
                self._failed_requests += 1
            raise

        with self._lock:
            self._successful_requests += 1
        return result

    def _reserve_slot(self) -> float:
        """Claim the next dispatch slot and return how long to wait for it"""
        with self._lock:
            now = time.monotonic()
            if self._last_request_time is None:
                scheduled = now
            else:
                scheduled = max(now, self._last_request_time + self.config.min_interval)
            self._last_request_time = scheduled

            wait = scheduled - now
            if wait > 0:
                self._rate_limited_requests += 1
                self._total_wait_time += wait
            return wait

    async def _wait_for_slot(self) -> None:
        wait = self._reserve_slot()
        if wait > 0:
            logger.debug(f"RateLimiter[{self.name}]: waiting {wait * 1000:.0f}ms")
            await asyncio.sleep(wait)

    async def _execute_with_retry(self, operation: Callable[[], Awaitable[T]]) -> T:
        last_error: Exception | None = None
        attempts = self.config.retry_attempts

        for attempt in range(attempts + 1):
            try:
                return await operation()
            except Exception as e:
                last_error = e
                if not getattr(e, "is_retryable", True) or attempt == attempts:
                    break

                delay = min(self.config.base_delay * 2**attempt, self.config.max_delay)
                logger.warning(
                    f"RateLimiter[{self.name}]: attempt {attempt + 1}/{attempts} failed, "
                    f"retrying in {delay:.2f}s: {e}"
                )
                with self._lock:
                    self._total_wait_time += delay
                await asyncio.sleep(delay)

        raise last_error

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            total = self._total_requests
            return {
                "name": self.name,
                "total_requests": total,
                "successful_requests": self._successful_requests,
                "rate_limited_requests": self._rate_limited_requests,
                "failed_requests": self._failed_requests,
                "average_wait_time": self._total_wait_time / total if total else 0.0,
            }

    def reset_stats(self) -> None:
        with self._lock:
            self._total_requests = 0
            self._successful_requests = 0
            self._rate_limited_requests = 0
            self._failed_requests = 0
            self._total_wait_time = 0.0
        logger.info(f"RateLimiter[{self.name}]: statistics reset")
