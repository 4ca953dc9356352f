"""Per-provider sliding-window request throttling."""

import asyncio
import logging
import threading
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, Optional

from repolens.config.settings import Settings
from repolens.exceptions import RateLimitError

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0


class SlidingWindowRateLimiter:
    """Throttles one provider to a request and cost ceiling per sliding window.

    Only the timestamps of requests issued within the last window are kept.
    Consumed cost is approximated as ``count * average_cost_per_request``
    rather than tracked per request. State is in-process only and is lost on
    restart; it throttles, it does not guarantee a hard quota.
    """

    def __init__(
        self,
        name: str,
        requests_per_minute: int,
        cost_per_minute: Optional[int] = None,
        average_cost_per_request: int = 0,
        window_seconds: float = WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if requests_per_minute < 1:
            raise ValueError("requests_per_minute must be positive")
        self.name = name
        self.requests_per_minute = requests_per_minute
        self.cost_per_minute = cost_per_minute
        self.average_cost_per_request = average_cost_per_request
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep
        self._timestamps: Deque[float] = deque()
        self._state_lock = threading.Lock()
        self._waiters: Optional[asyncio.Lock] = None

    # Sliding-window state -------------------------------------------------

    def _prune(self, now: float) -> None:
        while self._timestamps and now - self._timestamps[0] >= self.window_seconds:
            self._timestamps.popleft()

    def _fits(self, estimated_cost: float) -> bool:
        count = len(self._timestamps)
        if count >= self.requests_per_minute:
            return False
        if self.cost_per_minute is None or count == 0:
            # An empty window always admits one request, however large
            return True
        consumed = count * self.average_cost_per_request
        incoming = max(estimated_cost, self.average_cost_per_request)
        return consumed + incoming <= self.cost_per_minute

    @property
    def requests_in_window(self) -> int:
        with self._state_lock:
            self._prune(self._clock())
            return len(self._timestamps)

    @property
    def cost_in_window(self) -> int:
        return self.requests_in_window * self.average_cost_per_request

    def can_proceed(self, estimated_cost: float = 0) -> bool:
        with self._state_lock:
            self._prune(self._clock())
            return self._fits(estimated_cost)

    def record_usage(self, estimated_cost: float = 0) -> None:
        """Record one request now; refuses to push the window over its ceiling."""
        with self._state_lock:
            now = self._clock()
            self._prune(now)
            if not self._fits(estimated_cost):
                raise RateLimitError(
                    f"{self.name} window is full", provider=self.name, status_code=None
                )
            self._timestamps.append(now)

    def time_until_window_frees(self) -> float:
        """Seconds until the oldest request in the window ages out."""
        with self._state_lock:
            now = self._clock()
            self._prune(now)
            if not self._timestamps:
                return 0.0
            return max(0.0, self.window_seconds - (now - self._timestamps[0]))

    # Async gate -----------------------------------------------------------

    async def acquire(self, estimated_cost: float = 0) -> None:
        """Wait until the window has room, then record the request."""
        if self._waiters is None:
            self._waiters = asyncio.Lock()
        async with self._waiters:
            while True:
                with self._state_lock:
                    now = self._clock()
                    self._prune(now)
                    if self._fits(estimated_cost):
                        self._timestamps.append(now)
                        return
                    wait = max(0.0, self.window_seconds - (now - self._timestamps[0]))
                logger.info(
                    "[RateLimit] Waiting %.1fs for %s (%d requests in window)",
                    wait,
                    self.name,
                    len(self._timestamps),
                )
                await self._sleep(wait)


class RateLimiterRegistry:
    """One limiter per external provider, built once per process and passed around."""

    EMBEDDING = "embedding"
    CHAT = "chat"
    DIFF_SUMMARY = "diff_summary"
    HOSTING = "hosting"

    def __init__(self, limiters: Dict[str, SlidingWindowRateLimiter]):
        self._limiters = dict(limiters)

    def get(self, name: str) -> SlidingWindowRateLimiter:
        try:
            return self._limiters[name]
        except KeyError:
            raise KeyError(f"No rate limiter configured for provider {name!r}") from None

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateLimiterRegistry":
        return cls(
            {
                cls.CHAT: SlidingWindowRateLimiter(
                    cls.CHAT,
                    requests_per_minute=settings.CHAT_REQUESTS_PER_MINUTE,
                    cost_per_minute=settings.CHAT_COST_PER_MINUTE,
                    average_cost_per_request=settings.CHAT_AVERAGE_COST_PER_REQUEST,
                ),
                cls.EMBEDDING: SlidingWindowRateLimiter(
                    cls.EMBEDDING,
                    requests_per_minute=settings.EMBEDDING_REQUESTS_PER_MINUTE,
                ),
                cls.DIFF_SUMMARY: SlidingWindowRateLimiter(
                    cls.DIFF_SUMMARY,
                    requests_per_minute=settings.DIFF_SUMMARY_REQUESTS_PER_MINUTE,
                ),
                cls.HOSTING: SlidingWindowRateLimiter(
                    cls.HOSTING,
                    requests_per_minute=settings.HOSTING_REQUESTS_PER_MINUTE,
                ),
            }
        )
