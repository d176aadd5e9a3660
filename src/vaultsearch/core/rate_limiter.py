"""
Requests-per-minute limiter shared by every embedding call.

Sliding 60 second window. Callers suspend on ``wait()`` instead of hammering the provider;
the ceiling can be changed at any time (last write wins) and applies to the next caller.
"""

import asyncio
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Optional

from vaultsearch.core.logging import logger


class RateLimiter:
    """
    Async sliding-window rate limiter.

    Args:
        requests_per_minute: Maximum calls admitted in any 60 second window
        clock: Monotonic clock, injectable for tests
        sleep: Async sleep, injectable for tests
    """

    WINDOW_SECONDS = 60.0

    def __init__(
        self,
        requests_per_minute: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self._requests_per_minute = max(1, int(requests_per_minute))
        self._clock = clock
        self._sleep = sleep or asyncio.sleep
        self._request_times: Deque[float] = deque()
        self._lock = asyncio.Lock()

    @property
    def requests_per_minute(self) -> int:
        return self._requests_per_minute

    def set_requests_per_minute(self, requests_per_minute: int) -> None:
        """Update the ceiling live."""
        self._requests_per_minute = max(1, int(requests_per_minute))
        logger.info("Rate limit updated", requests_per_minute=self._requests_per_minute)

    def _prune(self, now: float) -> None:
        window_start = now - self.WINDOW_SECONDS
        while self._request_times and self._request_times[0] <= window_start:
            self._request_times.popleft()

    async def wait(self) -> None:
        """Suspend until a request slot is available, then claim it."""
        async with self._lock:
            while True:
                now = self._clock()
                self._prune(now)
                if len(self._request_times) < self._requests_per_minute:
                    self._request_times.append(now)
                    return

                wait_time = self._request_times[0] + self.WINDOW_SECONDS - now
                logger.debug(
                    "Rate limit reached, waiting",
                    wait_seconds=round(wait_time, 3),
                    requests_per_minute=self._requests_per_minute,
                )
                await self._sleep(max(wait_time, 0.0))
