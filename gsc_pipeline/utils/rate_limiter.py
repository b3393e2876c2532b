"""
Fixed-interval rate limiter for sequential per-URL provider calls.

Google's URL Inspection, Indexing and Sitemaps endpoints throttle bursts, so
every per-item loop awaits ``RateLimiter.wait()`` before each call. Clock and
sleep are injectable so the pacing contract can be tested without real time.
"""
import asyncio
import time
from typing import Awaitable, Callable, Optional


class RateLimiter:
    """Guarantees at least ``min_interval`` seconds between successive calls"""

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_call: Optional[float] = None
        self.total_wait_seconds = 0.0

    async def wait(self) -> float:
        """
        Block until the next call is allowed.

        Returns:
            Seconds actually slept (0.0 for the first call)
        """
        delay = 0.0
        if self._last_call is not None:
            elapsed = self._clock() - self._last_call
            if elapsed < self.min_interval:
                delay = self.min_interval - elapsed
                await self._sleep(delay)
                self.total_wait_seconds += delay
        self._last_call = self._clock()
        return delay

    def reset(self):
        self._last_call = None
        self.total_wait_seconds = 0.0
