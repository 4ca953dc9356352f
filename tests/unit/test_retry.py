"""Unit tests for RetryExecutor and error classification."""

import asyncio

import httpx
import pytest

from repolens.exceptions import (
    ConfigurationError,
    NotFoundError,
    ProviderError,
    RateLimitError,
    TransientProviderError,
    ValidationError,
)
from repolens.providers import ErrorKind, RetryExecutor, SlidingWindowRateLimiter, classify_error
from tests.fakes import FakeClock


class Flaky:
    """Fails with the given errors, then succeeds."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://example.test")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError("boom", request=request, response=response)


class TestClassifyError:
    @pytest.mark.parametrize(
        "error, kind",
        [
            (RateLimitError("slow down"), ErrorKind.RATE_LIMITED),
            (_status_error(429), ErrorKind.RATE_LIMITED),
            (TransientProviderError("reset"), ErrorKind.TRANSIENT),
            (asyncio.TimeoutError(), ErrorKind.TRANSIENT),
            (httpx.ConnectError("refused"), ErrorKind.TRANSIENT),
            (_status_error(503), ErrorKind.TRANSIENT),
            (_status_error(400), ErrorKind.FATAL),
            (ValidationError("bad"), ErrorKind.FATAL),
            (ConfigurationError("no key"), ErrorKind.FATAL),
            (NotFoundError("gone"), ErrorKind.FATAL),
            (ProviderError("nope", status_code=422), ErrorKind.FATAL),
            (KeyError("x"), ErrorKind.FATAL),
        ],
    )
    def test_classification(self, error, kind):
        assert classify_error(error) == kind


class TestRetryExecutor:
    def setup_method(self):
        self.clock = FakeClock()
        self.executor = RetryExecutor(sleep=self.clock.sleep)

    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        op = Flaky()
        assert await self.executor.with_retry(op, max_attempts=3, base_delay=1.0) == "ok"
        assert op.calls == 1
        assert self.clock.sleeps == []

    @pytest.mark.asyncio
    async def test_transient_errors_back_off_exponentially(self):
        op = Flaky(TransientProviderError("a"), TransientProviderError("b"))

        assert await self.executor.with_retry(op, max_attempts=3, base_delay=1.5) == "ok"

        assert op.calls == 3
        assert self.clock.sleeps == [1.5, 3.0]

    @pytest.mark.asyncio
    async def test_fatal_error_is_not_retried(self):
        op = Flaky(ConfigurationError("missing key"))

        with pytest.raises(ConfigurationError):
            await self.executor.with_retry(op, max_attempts=5, base_delay=1.0)

        assert op.calls == 1
        assert self.clock.sleeps == []

    @pytest.mark.asyncio
    async def test_exhausted_attempts_reraise_last_error(self):
        op = Flaky(TransientProviderError("one"), TransientProviderError("two"))

        with pytest.raises(TransientProviderError, match="two"):
            await self.executor.with_retry(op, max_attempts=2, base_delay=1.0)

        assert op.calls == 2
        assert self.clock.sleeps == [1.0]

    @pytest.mark.asyncio
    async def test_rate_limited_waits_for_retry_after(self):
        op = Flaky(RateLimitError("429", retry_after=7.0))

        await self.executor.with_retry(op, max_attempts=2, base_delay=1.0)

        assert self.clock.sleeps == [7.0]

    @pytest.mark.asyncio
    async def test_rate_limited_waits_for_window_to_free(self):
        limiter = SlidingWindowRateLimiter(
            "chat", requests_per_minute=10, clock=self.clock, sleep=self.clock.sleep
        )
        op = Flaky(RateLimitError("429"))

        await self.executor.with_retry(op, max_attempts=2, base_delay=2.0, limiter=limiter)

        # One request in the window recorded at t0; it frees 60s later
        assert self.clock.sleeps == [pytest.approx(60.0)]
        assert op.calls == 2

    @pytest.mark.asyncio
    async def test_rate_limited_never_waits_less_than_base_delay(self):
        op = Flaky(RateLimitError("429", retry_after=0.1))

        await self.executor.with_retry(op, max_attempts=2, base_delay=2.0)

        assert self.clock.sleeps == [2.0]

    @pytest.mark.asyncio
    async def test_every_attempt_passes_through_limiter(self):
        limiter = SlidingWindowRateLimiter(
            "hosting", requests_per_minute=100, clock=self.clock, sleep=self.clock.sleep
        )
        op = Flaky(TransientProviderError("x"), TransientProviderError("y"))

        await self.executor.with_retry(op, max_attempts=3, base_delay=0.5, limiter=limiter)

        assert limiter.requests_in_window == 3

    @pytest.mark.asyncio
    async def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            await self.executor.with_retry(Flaky(), max_attempts=0, base_delay=1.0)
