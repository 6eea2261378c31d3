"""Rate limiting for registry requests."""

import asyncio
import time


class RateLimiter:
    """Token bucket rate limiter shared by concurrent registry calls."""

    def __init__(self, requests_per_second: float = 20.0):
        """Initialize rate limiter.

        Args:
            requests_per_second: Maximum requests per second allowed
        """
        if requests_per_second <= 0:
            raise ValueError('requests_per_second must be positive')

        self.requests_per_second = requests_per_second
        self.tokens = requests_per_second
        self.last_update = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_update
        self.tokens = min(
            self.requests_per_second,
            self.tokens + elapsed * self.requests_per_second,
        )
        self.last_update = now

    async def acquire(self) -> None:
        """Wait until a request may be sent."""
        async with self._lock:
            self._refill()

            if self.tokens < 1:
                # Waiters queue on the lock, so the bucket drains in order
                await asyncio.sleep((1 - self.tokens) / self.requests_per_second)
                self._refill()

            self.tokens = max(self.tokens - 1, 0.0)
