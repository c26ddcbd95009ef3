from __future__ import annotations

from typing import Protocol


class LinkShortenerPort(Protocol):
    async def shorten(self, url: str) -> str:
        """Return a shortened form of url."""
        ...
