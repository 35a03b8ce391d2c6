"""
Rate Limiter

Per-provider outbound throttle. Combines a sliding one-minute window counter
(hard cap of N requests) with minimum spacing of 60/N seconds between
consecutive requests. Callers over the limit are delayed, never rejected.
"""
import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional
from loguru import logger


WINDOW_SECONDS = 60.0


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting."""
    requests_per_minute: int = 8
    enabled: bool = True

    @property
    def min_interval(self) -> float:
        """Minimum seconds between two consecutive requests."""
        return WINDOW_SECONDS / self.requests_per_minute


@dataclass
class WindowCounter:
    """Sliding window counter over recent request timestamps."""
    limit: int
    window_seconds: float = WINDOW_SECONDS
    requests: deque = field(default_factory=deque)

    def prune(self, now: float) -> None:
        """Remove requests that fell out of the window."""
        cutoff = now - self.window_seconds
        while self.requests and self.requests[0] <= cutoff:
            self.requests.popleft()

    def record_request(self, now: float) -> None:
        self.requests.append(now)
        # Only the most recent `limit` timestamps can ever matter
        while len(self.requests) > self.limit:
            self.requests.popleft()

    def time_until_available(self, now: float) -> float:
        """Seconds until a slot is free in the window."""
        self.prune(now)
        if len(self.requests) < self.limit:
            return 0.0
        return max(0.0, self.requests[0] + self.window_seconds - now)

    def remaining(self, now: float) -> int:
        self.prune(now)
        return max(0, self.limit - len(self.requests))


class RateLimiter:
    """
    Throttle for a single provider.

    acquire() suspends the calling task until both the window cap and the
    spacing rule allow a request, then records it. Waiting callers are
    served one at a time in arrival order. Cancelling a waiting task aborts
    its wait without recording a request.
    """

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        name: str = "provider",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or RateLimitConfig()
        if self.config.requests_per_minute < 1:
            raise ValueError("requests_per_minute must be at least 1")
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._window = WindowCounter(limit=self.config.requests_per_minute)
        self._last_request: Optional[float] = None
        self._lock = asyncio.Lock()
        self._total_wait = 0.0

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def _calculate_wait_time(self, now: float) -> float:
        """How long the next request must wait."""
        wait_times = [self._window.time_until_available(now)]
        if self._last_request is not None:
            since_last = now - self._last_request
            wait_times.append(max(0.0, self.config.min_interval - since_last))
        return max(wait_times)

    async def acquire(self) -> float:
        """
        Wait for permission to send one request.

        Returns:
            Seconds spent waiting (0.0 when throttling is disabled)
        """
        if not self.config.enabled:
            return 0.0

        waited = 0.0
        async with self._lock:
            wait_time = self._calculate_wait_time(self._clock())
            # Re-check after each sleep: the clock may have advanced less than asked
            while wait_time > 0:
                logger.debug(f"Rate limit: waiting {wait_time:.2f}s for {self.name}")
                await self._sleep(wait_time)
                waited += wait_time
                wait_time = self._calculate_wait_time(self._clock())

            now = self._clock()
            self._window.record_request(now)
            self._last_request = now

        self._total_wait += waited
        return waited

    def can_proceed(self) -> bool:
        """Check if a request can proceed without waiting."""
        if not self.config.enabled:
            return True
        return self._calculate_wait_time(self._clock()) == 0.0

    def get_stats(self) -> dict:
        """Get rate limiter statistics."""
        now = self._clock()
        return {
            "enabled": self.config.enabled,
            "requests_per_minute": self.config.requests_per_minute,
            "min_interval_seconds": round(self.config.min_interval, 3),
            "remaining": self._window.remaining(now),
            "wait_time": round(self._calculate_wait_time(now), 3) if self.config.enabled else 0.0,
            "total_wait_seconds": round(self._total_wait, 3),
        }
