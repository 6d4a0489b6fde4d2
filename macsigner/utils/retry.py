"""Retry with exponential back-off for transient remote failures.

The delay before retry ``n`` (0-based) is::

    delay = min(max_delay, base_delay * (2 ** n) + random_jitter(0, jitter))

Only transient failures are retried: network-level errors and HTTP
408/429/5xx responses. Anything else is raised on the first occurrence.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

import httpx

from macsigner.utils.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)

T = TypeVar("T")

#: HTTP status codes that are considered transient and should trigger a retry.
RETRYABLE_HTTP_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


@dataclass(frozen=True)
class RetryPolicy:
    """Back-off parameters for one remote operation."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 0.5
    retryable_statuses: frozenset[int] = field(default=RETRYABLE_HTTP_STATUSES)

    def delay_for(self, attempt: int) -> float:
        delay = self.base_delay * (2**attempt)
        if self.jitter > 0:
            delay += random.uniform(0, self.jitter)
        return min(self.max_delay, delay)

    def is_transient(self, exc: BaseException) -> bool:
        if isinstance(exc, httpx.HTTPStatusError):
            return exc.response.status_code in self.retryable_statuses
        return isinstance(exc, httpx.RequestError)


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]],
    breaker: CircuitBreaker | None = None,
    operation: str = "remote call",
) -> T:
    """Await ``fn()`` retrying transient failures according to ``policy``.

    Args:
        fn: Zero-argument coroutine factory performing one attempt.
        policy: Back-off parameters.
        sleep: Awaitable sleep used between attempts (injectable for tests).
        breaker: Optional circuit breaker consulted before every attempt.
        operation: Label used in log messages.

    Raises:
        CircuitBreakerOpen: If the breaker rejects an attempt.
        Exception: The last failure once retries are exhausted, or the first
            non-transient failure.
    """
    attempts = policy.max_retries + 1
    for attempt in range(attempts):
        if breaker is not None:
            breaker.before_call()
        try:
            result = await fn()
        except Exception as exc:
            transient = policy.is_transient(exc)
            if breaker is not None:
                if transient:
                    breaker.record_failure()
                elif isinstance(exc, httpx.HTTPStatusError):
                    # The service answered; it is reachable even if it refused us.
                    breaker.record_success()
            if not transient:
                raise
            if attempt + 1 >= attempts:
                logger.warning(
                    "%s exhausted all %d attempts: %s", operation, attempts, exc
                )
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                operation,
                attempt + 1,
                attempts,
                exc,
                delay,
            )
            await sleep(delay)
        else:
            if breaker is not None:
                breaker.record_success()
            return result

    raise AssertionError("unreachable")  # pragma: no cover
