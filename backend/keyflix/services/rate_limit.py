"""
rate_limit.py

In-process sliding-window limiter for search initiations.
A start is admitted only while fewer than `limit` starts happened inside the
trailing `window`; otherwise acquire() sleeps until the oldest start ages out
and checks again. Calls are delayed, never dropped.
"""
import asyncio
import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque

logger = logging.getLogger(__name__)


class SlidingWindowLimiter:
    """Sliding window over request start timestamps."""

    def __init__(
        self,
        limit: int,
        window: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        name: str = "search",
    ):
        if limit < 1 or window <= 0:
            raise ValueError("limit must be >= 1 and window must be positive")
        self.limit = limit
        self.window = window
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._starts: Deque[float] = deque()

    def _evict(self, now: float) -> None:
        while self._starts and now - self._starts[0] >= self.window:
            self._starts.popleft()

    def try_acquire(self) -> bool:
        """Record a start if the window admits one. Never waits."""
        now = self._clock()
        self._evict(now)
        if len(self._starts) < self.limit:
            self._starts.append(now)
            return True
        return False

    def wait_time(self) -> float:
        now = self._clock()
        self._evict(now)
        if len(self._starts) < self.limit:
            return 0.0
        return max(0.0, self.window - (now - self._starts[0]))

    async def acquire(self) -> None:
        """Wait until the window admits a start, then record it."""
        while not self.try_acquire():
            delay = self.wait_time()
            logger.warning(f"Rate limit reached for {self.name} ({self.limit}/{self.window}s), waiting {delay:.2f}s")
            # wait_time() can be 0 when the oldest start ages out between calls
            await self._sleep(delay)
