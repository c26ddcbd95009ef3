from __future__ import annotations

from typing import Protocol


class RateLimiterPort(Protocol):
    async def wait(self) -> None:
        """Suspend until a permit is available according to the configured rate."""
