from __future__ import annotations

import asyncio
import time
from typing import Protocol


class ClockPort(Protocol):
    def monotonic(self) -> float:
        """Return a monotonic time in seconds for measuring intervals."""
        ...

    def time(self) -> float:
        """Return wall-clock UNIX time in seconds."""
        ...

    async def sleep(self, seconds: float) -> None:
        """Suspend the current task for the given seconds."""


class SystemClock:
    def monotonic(self) -> float:
        return time.monotonic()

    def time(self) -> float:
        return time.time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
