"""Async token bucket guarding outbound Gemini requests."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Optional

from src.shared.utils.logging import get_logger

LOGGER = get_logger(__name__)


class RateLimitExceeded(RuntimeError):
    """Raised when no token becomes available before the caller's deadline."""


@dataclass
class RateLimiter:
    """Token bucket refilled continuously at ``max_requests_per_minute``."""

    max_requests_per_minute: int = 60
    min_sleep_seconds: float = 0.05
    _tokens: float = field(init=False, repr=False)
    _updated: float = field(init=False, repr=False)
    _lock: Optional[asyncio.Lock] = field(init=False, repr=False, default=None)

    def __post_init__(self) -> None:
        if self.max_requests_per_minute <= 0:
            raise ValueError("max_requests_per_minute must be positive")
        self._tokens = float(self.max_requests_per_minute)
        self._updated = time.monotonic()

    @property
    def _rate_per_second(self) -> float:
        return self.max_requests_per_minute / 60.0

    async def acquire(self, timeout: Optional[float] = None) -> None:
        """Take one token, sleeping until one is available or *timeout* elapses."""

        # The lock is created lazily so it binds to the running event loop
        if self._lock is None:
            self._lock = asyncio.Lock()
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            async with self._lock:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
                wait = max(self.min_sleep_seconds, (1.0 - self._tokens) / self._rate_per_second)

            if deadline is not None and time.monotonic() + wait > deadline:
                raise RateLimitExceeded("Timed out waiting for a Gemini request slot")
            LOGGER.debug("Rate limiter waiting %.2fs for a token", wait)
            await asyncio.sleep(wait)

    def release(self) -> None:
        """Give back a token taken by a call that never reached the API."""

        self._tokens = min(float(self.max_requests_per_minute), self._tokens + 1.0)

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self._updated
        if elapsed > 0:
            self._tokens = min(
                float(self.max_requests_per_minute),
                self._tokens + elapsed * self._rate_per_second,
            )
            self._updated = now
