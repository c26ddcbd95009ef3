from __future__ import annotations

from typing import Generic, Protocol, TypeVar

ValueT = TypeVar("ValueT")


class CachePort(Protocol, Generic[ValueT]):
    def get(self, key: str) -> ValueT | None:
        """Return the cached value for key, or None if missing/expired."""

    def set(self, key: str, value: ValueT) -> None:
        """Store value under key, resetting its age."""

    def clear(self) -> None:
        """Drop all entries."""
