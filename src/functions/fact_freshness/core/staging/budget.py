"""Wall-clock budget shared by every external call of one staging run."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, TypeVar

R = TypeVar("R")


class Budget:
    def __init__(self, seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._deadline = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self._deadline - self._clock())

    @property
    def exhausted(self) -> bool:
        return self.remaining() <= 0.0

    async def bound(self, awaitable: Awaitable[R]) -> R:
        """Await *awaitable* for at most the remaining budget.

        Raises ``asyncio.TimeoutError`` when the budget is already spent or
        runs out while waiting.
        """

        remaining = self.remaining()
        if remaining <= 0.0:
            close = getattr(awaitable, "close", None)
            if close is not None:
                close()
            raise asyncio.TimeoutError("staging budget exhausted")
        return await asyncio.wait_for(awaitable, timeout=remaining)
