from __future__ import annotations

import asyncio
import logging
from collections import deque

from ..core.ports.clock_port import ClockPort, SystemClock
from ..core.ports.rate_limiter_port import RateLimiterPort

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter(RateLimiterPort):
    """Sliding window rate limiter that tracks request timestamps over a time window.

    Callers are delayed, never rejected. The slot for a call is computed and
    recorded before the call suspends, so concurrent callers on the same event
    loop cannot over-admit: the n-th caller past the limit is scheduled one
    window after the timestamp `max_requests` positions before it.

    Example:
        # Yandex Music defaults: 100 requests per minute
        limiter = SlidingWindowRateLimiter(max_requests=100, window_seconds=60.0)

        # Or for testing: 3 requests per half second
        limiter = SlidingWindowRateLimiter(max_requests=3, window_seconds=0.5)
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: ClockPort | None = None,
    ) -> None:
        """Initialize sliding window rate limiter.

        Args:
            max_requests: Maximum number of requests allowed in the time window
            window_seconds: Time window in seconds (e.g., 60.0 for one minute)
            clock: Optional clock, mainly for tests; defaults to the system clock
        """
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        self._max_requests = max_requests
        self._window = window_seconds
        self._clock = clock or SystemClock()
        self._timestamps: deque[float] = deque()

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window_seconds(self) -> float:
        return self._window

    def timestamps(self) -> list[float]:
        """Recorded (and reserved) timestamps, oldest first."""
        return list(self._timestamps)

    async def wait(self) -> None:
        """Wait until the request fits into the window, then count it."""
        now = self._clock.monotonic()
        cutoff = now - self._window

        # Remove timestamps outside the current window
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

        slot = now
        if len(self._timestamps) >= self._max_requests:
            slot = max(now, self._timestamps[-self._max_requests] + self._window)

        # Reserve before suspending
        self._timestamps.append(slot)

        delay = slot - now
        if delay > 0:
            logger.debug("Rate limit reached (%d/%.1fs), waiting %.3fs", self._max_requests, self._window, delay)
            try:
                await self._clock.sleep(delay)
            except asyncio.CancelledError:
                # The call never happens; give the slot back
                if slot in self._timestamps:
                    self._timestamps.remove(slot)
                raise
