from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from ..core.ports.cache_port import CachePort
from ..core.ports.clock_port import ClockPort, SystemClock

ValueT = TypeVar("ValueT")


@dataclass(frozen=True)
class CacheEntry(Generic[ValueT]):
    value: ValueT
    inserted_at: float


class InMemoryCache(CachePort[ValueT]):
    """Process-local LRU cache with one TTL for every entry.

    Age is measured from insertion against the current clock on each read;
    reads refresh LRU recency but not age. A TTL of 0 disables storage.
    """

    def __init__(self, ttl_seconds: float = 300.0, max_size: int = 500, clock: ClockPort | None = None) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self._ttl = ttl_seconds
        self._max_size = max_size
        self._clock = clock or SystemClock()
        self._rows: OrderedDict[str, CacheEntry[ValueT]] = OrderedDict()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    @property
    def max_size(self) -> int:
        return self._max_size

    def get(self, key: str) -> ValueT | None:
        row = self._rows.get(key)
        if row is None:
            return None
        if self._clock.monotonic() - row.inserted_at >= self._ttl:
            del self._rows[key]
            return None
        self._rows.move_to_end(key)
        return row.value

    def set(self, key: str, value: ValueT) -> None:
        if self._ttl <= 0:
            return
        self._rows[key] = CacheEntry(value=value, inserted_at=self._clock.monotonic())
        self._rows.move_to_end(key)
        while len(self._rows) > self._max_size:
            self._rows.popitem(last=False)

    def clear(self) -> None:
        self._rows.clear()

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    def stats(self) -> dict[str, Any]:
        return {"size": len(self._rows), "max_size": self._max_size, "ttl_seconds": self._ttl}
