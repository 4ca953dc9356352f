"""Exponential-backoff retry wrapper shared by every external-provider call."""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from repolens.exceptions import RateLimitError, TransientProviderError

from .rate_limiter import SlidingWindowRateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    FATAL = "fatal"


def classify_error(error: BaseException) -> ErrorKind:
    """Sort an exception into rate-limited, transient or fatal."""
    if isinstance(error, RateLimitError):
        return ErrorKind.RATE_LIMITED
    if isinstance(error, (TransientProviderError, asyncio.TimeoutError)):
        return ErrorKind.TRANSIENT
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status == 429:
            return ErrorKind.RATE_LIMITED
        if status >= 500:
            return ErrorKind.TRANSIENT
        return ErrorKind.FATAL
    if isinstance(error, (httpx.TimeoutException, httpx.TransportError)):
        return ErrorKind.TRANSIENT
    return ErrorKind.FATAL


class RetryExecutor:
    """Runs an async operation with the rate-limit / backoff discipline.

    Rate-limited failures wait ``max(window free time, retry-after, base_delay)``.
    Transient failures wait ``base_delay * 2 ** attempt``. Anything else is
    re-raised at once. When a limiter is given, every attempt first passes
    through it so retries are throttled like first calls.
    """

    def __init__(self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self._sleep = sleep

    async def with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        max_attempts: int,
        base_delay: float,
        limiter: Optional[SlidingWindowRateLimiter] = None,
        estimated_cost: float = 0,
        context: str = "operation",
    ) -> T:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        for attempt in range(max_attempts):
            if limiter is not None:
                await limiter.acquire(estimated_cost)
            try:
                return await operation()
            except Exception as e:
                kind = classify_error(e)
                remaining = max_attempts - attempt - 1
                if kind == ErrorKind.FATAL:
                    logger.warning("[Retry] %s failed with a fatal error: %s", context, e)
                    raise
                if remaining == 0:
                    logger.error(
                        "[Retry] Max retries exhausted for %s after %d attempts: %s",
                        context,
                        max_attempts,
                        e,
                    )
                    raise

                delay = self._delay_for(kind, e, attempt, base_delay, limiter)
                logger.warning(
                    "[Retry] %s attempt %d/%d failed (%s), retrying in %.2fs",
                    context,
                    attempt + 1,
                    max_attempts,
                    kind.value,
                    delay,
                )
                await self._sleep(delay)

        # Unreachable: the loop either returns or raises
        raise RuntimeError(f"{context} exited the retry loop without a result")

    @staticmethod
    def _delay_for(
        kind: ErrorKind,
        error: BaseException,
        attempt: int,
        base_delay: float,
        limiter: Optional[SlidingWindowRateLimiter],
    ) -> float:
        if kind == ErrorKind.RATE_LIMITED:
            window_free = limiter.time_until_window_frees() if limiter else 0.0
            retry_after = getattr(error, "retry_after", None) or 0.0
            return max(window_free, retry_after, base_delay)
        return base_delay * (2**attempt)
