"""
Minimum-interval rate limiter.

Spaces out calls to an external provider. Unlike a token bucket it never
bursts: each acquire() waits until `min_interval` seconds have passed since
the previous one.

Usage:
    limiter = RateLimiter(0.5)
    for asin in asins:
        await limiter.acquire()
        await provider.reverse_asin(asin)
"""

import asyncio
import time
from typing import Callable, Optional


class RateLimiter:
    """Async limiter enforcing a minimum spacing between acquisitions."""

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.min_interval = max(0.0, min_interval)
        self._clock = clock
        self._last: Optional[float] = None
        self._lock = asyncio.Lock()

    async def acquire(self, interval: Optional[float] = None) -> float:
        """
        Wait for the next slot.

        Args:
            interval: Spacing to enforce for this call instead of min_interval

        Returns:
            Seconds slept (0.0 for the first call or when the interval has passed)
        """
        async with self._lock:
            waited = 0.0
            spacing = self.min_interval if interval is None else max(0.0, interval)
            if self._last is not None and spacing > 0:
                elapsed = self._clock() - self._last
                if elapsed < spacing:
                    waited = spacing - elapsed
                    await asyncio.sleep(waited)
            self._last = self._clock()
            return waited

    def reset(self) -> None:
        """Forget the previous acquisition so the next one is immediate."""
        self._last = None
