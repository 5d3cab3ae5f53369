"""Shared token bucket bandwidth limiter for part uploads."""

import asyncio
import time


class BandwidthLimiter:
    """Token bucket limiting the aggregate rate of part uploads.

    The bucket holds at most one second of budget. Parts are usually larger
    than that, so a request larger than the bucket is granted once the bucket
    is full and the balance goes negative; later requests pay off the debt.
    """

    def __init__(self, bytes_per_second: int) -> None:
        """Initialise the limiter.

        Args:
            bytes_per_second: Maximum aggregate upload rate in bytes/second.
        """
        if bytes_per_second <= 0:
            raise ValueError(
                f"bytes_per_second must be a positive integer, got {bytes_per_second}"
            )
        self._rate = bytes_per_second
        self._capacity = float(bytes_per_second)
        self._tokens = self._capacity
        self._last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    @property
    def rate(self) -> int:
        """Configured rate in bytes/second."""
        return self._rate

    def _refill(self) -> None:
        now = time.monotonic()
        self._tokens = min(
            self._capacity, self._tokens + (now - self._last_refill) * self._rate
        )
        self._last_refill = now

    async def acquire(self, n_bytes: int) -> None:
        """Wait until `n_bytes` may be sent.

        Args:
            n_bytes: Number of bytes about to be uploaded.
        """
        if n_bytes <= 0:
            return
        async with self._lock:
            self._refill()
            needed = min(float(n_bytes), self._capacity)
            if self._tokens < needed:
                await asyncio.sleep((needed - self._tokens) / self._rate)
                self._refill()
            self._tokens -= n_bytes
