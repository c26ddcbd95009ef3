from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ConcurrencyQueue:
    """Run at most `max_concurrent` tasks at once; extra callers wait in FIFO order.

    A finishing task hands its slot straight to the oldest waiter, so a newly
    arriving caller can never overtake somebody already queued.
    """

    def __init__(self, max_concurrent: int = 50) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._max_concurrent = max_concurrent
        self._running = 0
        self._waiters: deque[asyncio.Future[None]] = deque()

    @property
    def running(self) -> int:
        return self._running

    @property
    def pending(self) -> int:
        return len(self._waiters)

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    async def run(self, factory: Callable[[], Awaitable[T]]) -> T:
        await self._acquire()
        try:
            return await factory()
        finally:
            self._release()

    async def _acquire(self) -> None:
        if self._running < self._max_concurrent and not self._waiters:
            self._running += 1
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        logger.debug("Queue full (%d running), %d waiting", self._running, len(self._waiters))
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was handed over just before cancellation; pass it on.
                self._release()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # running stays the same: the slot moves to the waiter
                waiter.set_result(None)
                return
        self._running -= 1
