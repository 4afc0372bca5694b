"""Concurrency primitives for batch checks.

Each check is independent; this only bounds how many run at once
when a scheduler hands us a whole batch of products.
"""

import asyncio
import time
from contextlib import asynccontextmanager


class RateLimiter:
    """Spaces out operation starts by a fixed delay.

    Callers reserve the next free start slot under the lock and sleep
    outside it. A delay of 0 disables limiting entirely.
    """

    def __init__(self, delay: float = 0.0):
        """Initialize rate limiter with delay in seconds between starts."""
        self.delay = delay
        self._next_start = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self):
        """Wait for this caller's start slot."""
        if self.delay <= 0:
            return
        async with self._lock:
            now = time.monotonic()
            start = max(now, self._next_start)
            self._next_start = start + self.delay
        if start > now:
            await asyncio.sleep(start - now)


class ConcurrencyController:
    """Semaphore-bounded execution with optional start spacing.

    Tracks how many operations are in flight and the peak reached,
    so batch runs can report it.
    """

    def __init__(self, max_workers: int = 10, rate_limit_delay: float = 0.0):
        self.max_workers = max(1, max_workers)
        self.semaphore = asyncio.Semaphore(self.max_workers)
        self.rate_limiter = RateLimiter(delay=rate_limit_delay)
        self.in_flight = 0
        self.peak = 0

    @asynccontextmanager
    async def acquire(self):
        """Hold a worker slot for the duration of the block.

        Usage:
            async with controller.acquire():
                await checker.check_product(product_id)
        """
        async with self.semaphore:
            await self.rate_limiter.acquire()
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
            try:
                yield
            finally:
                self.in_flight -= 1
