"""Circuit breaker for calls to the signing service.

Once the service has failed ``failure_threshold`` times in a row (transient
failures only) further calls are refused locally until ``reset_timeout``
seconds have passed. The next call is then let through as a probe: success
closes the circuit again, failure re-opens it.

See: https://martinfowler.com/bliki/CircuitBreaker.html
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """Raised when a call is refused because the circuit is open."""

    def __init__(self, retry_after: float) -> None:
        super().__init__(f"circuit open, retry in {retry_after:.0f}s")
        self.retry_after = retry_after


@dataclass
class CircuitBreaker:
    """Consecutive-failure circuit breaker.

    Example:
        >>> breaker = CircuitBreaker(failure_threshold=5, reset_timeout=60)
        >>> try:
        ...     response = await breaker.call(lambda: client.get(url))
        ... except CircuitBreakerOpen as exc:
        ...     print(f"service unavailable, retry in {exc.retry_after}s")
    """

    failure_threshold: int = 5
    reset_timeout: float = 60.0
    half_open_max_calls: int = 1
    clock: Callable[[], float] = time.monotonic

    state: BreakerState = field(default=BreakerState.CLOSED, init=False)
    consecutive_failures: int = field(default=0, init=False)
    opened_at: float | None = field(default=None, init=False)
    half_open_successes: int = field(default=0, init=False)

    def retry_after(self) -> float:
        """Seconds until an open circuit admits a probe call (0 when not open)."""
        if self.state is not BreakerState.OPEN or self.opened_at is None:
            return 0.0
        return max(0.0, self.reset_timeout - (self.clock() - self.opened_at))

    def before_call(self) -> None:
        """Raise ``CircuitBreakerOpen`` unless a call may proceed now."""
        if self.state is not BreakerState.OPEN:
            return
        remaining = self.retry_after()
        if remaining > 0:
            raise CircuitBreakerOpen(remaining)
        logger.info("Circuit half-open; probing signing service")
        self.state = BreakerState.HALF_OPEN
        self.half_open_successes = 0

    async def call(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Await ``fn()`` under the breaker, counting any exception as a failure."""
        self.before_call()
        try:
            result = await fn()
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def record_success(self) -> None:
        if self.state is BreakerState.HALF_OPEN:
            self.half_open_successes += 1
            if self.half_open_successes < self.half_open_max_calls:
                return
            logger.info("Circuit closed; signing service recovered")
        self.reset()

    def record_failure(self) -> None:
        self.consecutive_failures += 1
        if (
            self.state is BreakerState.HALF_OPEN
            or self.consecutive_failures >= self.failure_threshold
        ):
            if self.state is not BreakerState.OPEN:
                logger.warning(
                    "Circuit opened after %d consecutive failures", self.consecutive_failures
                )
            self.state = BreakerState.OPEN
            self.opened_at = self.clock()

    def reset(self) -> None:
        self.state = BreakerState.CLOSED
        self.consecutive_failures = 0
        self.opened_at = None
        self.half_open_successes = 0
