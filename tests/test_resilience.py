"""Tests for retry back-off and the circuit breaker."""

import httpx
import pytest

from macsigner.utils.circuit_breaker import BreakerState, CircuitBreaker, CircuitBreakerOpen
from macsigner.utils.retry import RetryPolicy, retry_async


def _status_error(code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://signing.example.com/status/1")
    response = httpx.Response(code, request=request)
    return httpx.HTTPStatusError(f"HTTP {code}", request=request, response=response)


class Flaky:
    """Coroutine factory failing with ``errors`` before returning ``"ok"``."""

    def __init__(self, *errors: Exception) -> None:
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class Sleeps(list):
    async def __call__(self, seconds: float) -> None:
        self.append(seconds)


def test_delay_grows_exponentially_and_is_capped() -> None:
    policy = RetryPolicy(base_delay=1.0, max_delay=5.0, jitter=0)

    assert [policy.delay_for(n) for n in range(4)] == [1.0, 2.0, 4.0, 5.0]


def test_jitter_stays_within_bounds() -> None:
    policy = RetryPolicy(base_delay=1.0, jitter=0.5)

    for _ in range(20):
        assert 1.0 <= policy.delay_for(0) <= 1.5


@pytest.mark.parametrize(
    ("exc", "transient"),
    [
        (_status_error(503), True),
        (_status_error(429), True),
        (_status_error(408), True),
        (_status_error(400), False),
        (_status_error(401), False),
        (httpx.ConnectError("refused"), True),
        (ValueError("bad"), False),
    ],
)
def test_is_transient(exc: Exception, transient: bool) -> None:
    assert RetryPolicy().is_transient(exc) is transient


@pytest.mark.asyncio
async def test_retry_recovers_from_transient_failures() -> None:
    fn = Flaky(httpx.ConnectError("refused"), _status_error(503))
    sleeps = Sleeps()

    result = await retry_async(
        fn, policy=RetryPolicy(max_retries=3, base_delay=0.25, jitter=0), sleep=sleeps
    )

    assert result == "ok"
    assert fn.calls == 3
    assert sleeps == [0.25, 0.5]


@pytest.mark.asyncio
async def test_retry_gives_up_after_max_retries() -> None:
    fn = Flaky(*[_status_error(502)] * 5)
    sleeps = Sleeps()

    with pytest.raises(httpx.HTTPStatusError):
        await retry_async(fn, policy=RetryPolicy(max_retries=2, jitter=0), sleep=sleeps)

    assert fn.calls == 3
    assert len(sleeps) == 2


@pytest.mark.asyncio
async def test_non_transient_failure_is_not_retried() -> None:
    fn = Flaky(_status_error(400))
    sleeps = Sleeps()

    with pytest.raises(httpx.HTTPStatusError):
        await retry_async(fn, policy=RetryPolicy(max_retries=3), sleep=sleeps)

    assert fn.calls == 1
    assert sleeps == []


class Ticker:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_breaker_opens_after_threshold_and_half_opens_after_timeout() -> None:
    ticker = Ticker()
    breaker = CircuitBreaker(failure_threshold=2, reset_timeout=30, clock=ticker)

    breaker.record_failure()
    breaker.before_call()
    breaker.record_failure()
    assert breaker.state is BreakerState.OPEN

    ticker.now = 10
    with pytest.raises(CircuitBreakerOpen) as exc_info:
        breaker.before_call()
    assert exc_info.value.retry_after == 20

    ticker.now = 30
    breaker.before_call()
    assert breaker.state is BreakerState.HALF_OPEN

    breaker.record_success()
    assert breaker.state is BreakerState.CLOSED
    assert breaker.consecutive_failures == 0
    assert breaker.retry_after() == 0


def test_failure_while_half_open_reopens() -> None:
    ticker = Ticker()
    breaker = CircuitBreaker(failure_threshold=1, reset_timeout=10, clock=ticker)
    breaker.record_failure()

    ticker.now = 10
    breaker.before_call()
    breaker.record_failure()

    assert breaker.state is BreakerState.OPEN
    assert breaker.retry_after() == 10
    with pytest.raises(CircuitBreakerOpen):
        breaker.before_call()


def test_success_resets_failure_streak() -> None:
    breaker = CircuitBreaker(failure_threshold=3)

    breaker.record_failure()
    breaker.record_failure()
    breaker.record_success()
    breaker.record_failure()

    assert breaker.state is BreakerState.CLOSED
    assert breaker.consecutive_failures == 1


@pytest.mark.asyncio
async def test_retry_counts_only_transient_failures_against_breaker() -> None:
    breaker = CircuitBreaker(failure_threshold=2)

    with pytest.raises(httpx.HTTPStatusError):
        await retry_async(
            Flaky(_status_error(404)),
            policy=RetryPolicy(max_retries=0),
            sleep=Sleeps(),
            breaker=breaker,
        )
    assert breaker.state is BreakerState.CLOSED

    with pytest.raises(CircuitBreakerOpen):
        await retry_async(
            Flaky(*[_status_error(503)] * 3),
            policy=RetryPolicy(max_retries=3, jitter=0),
            sleep=Sleeps(),
            breaker=breaker,
        )
    assert breaker.state is BreakerState.OPEN


@pytest.mark.asyncio
async def test_breaker_call_wrapper() -> None:
    breaker = CircuitBreaker(failure_threshold=1)

    assert await breaker.call(Flaky()) == "ok"
    with pytest.raises(ValueError):
        await breaker.call(Flaky(ValueError("boom")))

    assert breaker.state is BreakerState.OPEN
    breaker.reset()
    assert breaker.state is BreakerState.CLOSED


@pytest.mark.asyncio
async def test_local_failure_does_not_close_half_open_breaker() -> None:
    ticker = Ticker()
    breaker = CircuitBreaker(failure_threshold=1, reset_timeout=10, clock=ticker)
    breaker.record_failure()
    ticker.now = 10

    with pytest.raises(ValueError):
        await retry_async(
            Flaky(ValueError("no credential")),
            policy=RetryPolicy(max_retries=0),
            sleep=Sleeps(),
            breaker=breaker,
        )

    assert breaker.state is BreakerState.HALF_OPEN
