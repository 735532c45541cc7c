"""
Circuit Breaker Pattern
=======================
Stops calling a failing external dependency until it looks healthy again

States:
- CLOSED: normal, calls pass through. failure_threshold consecutive failures -> OPEN
- OPEN: calls rejected with CircuitOpenError until reset_timeout has passed,
  then the next call is let through as a trial (HALF_OPEN)
- HALF_OPEN: success_threshold successes -> CLOSED, any failure -> OPEN
"""

import logging
import threading
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, TypeVar

from src.domain.exceptions import CircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker state"""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker guarding one external dependency

    Usage:
        breaker = CircuitBreaker(name="reasoning", failure_threshold=5)
        result = await breaker.execute(lambda: client.fetch(...))

    Args:
        name: breaker name (logging and stats)
        failure_threshold: consecutive failures in CLOSED before opening (default 5)
        reset_timeout: seconds an OPEN breaker waits before allowing a trial call (default 60)
        success_threshold: HALF_OPEN successes required to close again (default 3)
        clock: monotonic time source, injectable for tests
    """

    def __init__(
        self,
        name: str = "default",
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        success_threshold: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.success_threshold = success_threshold
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: float | None = None
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        """Current state. OPEN only turns into HALF_OPEN when a call is attempted."""
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def success_count(self) -> int:
        return self._success_count

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run operation through the breaker

        Raises:
            CircuitOpenError: breaker is OPEN and reset_timeout has not elapsed
            Exception: whatever operation raised (after being recorded as a failure)
        """
        self._before_call()
        try:
            result = await operation()
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def _before_call(self) -> None:
        with self._lock:
            if self._state != CircuitState.OPEN:
                return

            elapsed = self._clock() - (self._last_failure_time or 0.0)
            if elapsed > self.reset_timeout:
                self._state = CircuitState.HALF_OPEN
                self._success_count = 0
                logger.info(f"CircuitBreaker[{self.name}]: OPEN -> HALF_OPEN (after {elapsed:.1f}s)")
                return

            raise CircuitOpenError(self.name, retry_after=self.reset_timeout - elapsed)

    def record_success(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.success_threshold:
                    self._state = CircuitState.CLOSED
                    self._failure_count = 0
                    logger.info(f"CircuitBreaker[{self.name}]: HALF_OPEN -> CLOSED")
            elif self._state == CircuitState.CLOSED:
                self._failure_count = 0

    def record_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()

            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                logger.warning(f"CircuitBreaker[{self.name}]: HALF_OPEN -> OPEN (failure)")
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.failure_threshold
            ):
                self._state = CircuitState.OPEN
                logger.warning(
                    f"CircuitBreaker[{self.name}]: CLOSED -> OPEN (failures={self._failure_count})"
                )

    def reset(self) -> None:
        """Force CLOSED with all counters cleared"""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._success_count = 0
            self._last_failure_time = None
        logger.info(f"CircuitBreaker[{self.name}]: Reset to CLOSED")

    def get_stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
            "last_failure_time": self._last_failure_time,
            "failure_threshold": self.failure_threshold,
            "reset_timeout": self.reset_timeout,
        }
