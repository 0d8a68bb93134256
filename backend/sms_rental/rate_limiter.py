"""
Sliding-window rate limiter.

Allows at most max_requests calls per rolling window. A caller that would
exceed the limit sleeps until the oldest call leaves the window (plus a
one second margin) and then checks again.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Optional

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """Per-process limiter for one provider."""

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        name: str = "provider",
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        margin_seconds: float = 1.0,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.name = name
        self.margin_seconds = margin_seconds
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._calls: Deque[float] = deque()
        self._lock = asyncio.Lock()

    def _prune(self, now: float):
        while self._calls and now - self._calls[0] >= self.window_seconds:
            self._calls.popleft()

    @property
    def in_window(self) -> int:
        self._prune(self._clock())
        return len(self._calls)

    async def acquire(self):
        """Wait for a free slot and record the call."""
        async with self._lock:
            while True:
                now = self._clock()
                self._prune(now)
                if len(self._calls) < self.max_requests:
                    self._calls.append(now)
                    return
                wait = self.window_seconds - (now - self._calls[0]) + self.margin_seconds
                logger.info(f"{self.name} rate limit reached, waiting {wait:.1f}s")
                await self._sleep(wait)
