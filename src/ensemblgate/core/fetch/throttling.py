"""
Global rate limiting.

Enforces a minimum interval between the starts of successive outbound
attempts, process-wide, to stay under Ensembl's published ceiling
(15 requests/second).
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable


logger = logging.getLogger(__name__)


DEFAULT_MIN_INTERVAL = 0.1  # 10 requests/second, conservative


class RateLimiter:
    """Minimum-interval gate on outbound attempts.

    Callers are serialized through an asyncio lock, so at most one
    attempt starts per ``min_interval`` regardless of how many
    coroutines are waiting. Only start spacing is guaranteed, not
    completion order.
    """

    def __init__(
        self,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize rate limiter.

        Args:
            min_interval: Minimum seconds between acquisitions
            clock: Monotonic time source
            sleep: Coroutine used to wait
        """
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")

        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()

        self._last_request_at: float | None = None
        self._acquisitions = 0
        self._total_wait = 0.0

    async def acquire(self) -> float:
        """Wait until an attempt may start, then claim the slot.

        Returns:
            Seconds spent waiting
        """
        waited = 0.0

        async with self._lock:
            while self._last_request_at is not None:
                elapsed = self._clock() - self._last_request_at
                if elapsed >= self.min_interval:
                    break

                wait_time = self.min_interval - elapsed
                logger.debug("rate_limit_wait", extra={"wait_s": round(wait_time, 4)})
                await self._sleep(wait_time)
                waited += wait_time

            self._last_request_at = self._clock()
            self._acquisitions += 1
            self._total_wait += waited

        return waited

    def stats(self) -> dict[str, Any]:
        """Get rate limiter statistics."""
        return {
            "min_interval": self.min_interval,
            "last_request_at": self._last_request_at,
            "acquisitions": self._acquisitions,
            "total_wait_s": round(self._total_wait, 4),
        }
