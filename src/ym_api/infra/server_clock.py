from __future__ import annotations

import asyncio
import logging
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from ..core.domain.models import ServerOffset
from ..core.errors import YMApiError
from ..core.ports.clock_port import ClockPort, SystemClock
from .request import api_request

if TYPE_CHECKING:
    from .http_client import HttpClient

logger = logging.getLogger(__name__)

OFFSET_TTL_SECONDS = 300.0
OFFSET_TIMEOUT_SECONDS = 2.0
OFFSET_ATTEMPTS = 3


class ServerClock:
    """Local time corrected by the API server's clock.

    The offset is `server - local` in whole seconds, read from the `Date`
    header of the API root. It is cached for five minutes. A failed fetch
    never raises: the offset falls back to 0 and is retried on the next call.
    """

    def __init__(
        self,
        http_client: "HttpClient",
        clock: Optional[ClockPort] = None,
        ttl_seconds: float = OFFSET_TTL_SECONDS,
        timeout_seconds: float = OFFSET_TIMEOUT_SECONDS,
        attempts: int = OFFSET_ATTEMPTS,
    ) -> None:
        self._http = http_client
        self._clock = clock or SystemClock()
        self._ttl = ttl_seconds
        self._timeout = timeout_seconds
        self._attempts = attempts
        self._cached: Optional[ServerOffset] = None
        self._lock = asyncio.Lock()

    @property
    def cached(self) -> Optional[ServerOffset]:
        return self._cached

    def invalidate(self) -> None:
        self._cached = None

    async def offset(self) -> int:
        if self._is_fresh():
            return self._cached.seconds  # type: ignore[union-attr]
        async with self._lock:
            # Another caller may have refreshed while we waited for the lock
            if self._is_fresh():
                return self._cached.seconds  # type: ignore[union-attr]
            try:
                seconds = await self._fetch_with_retry()
            except (httpx.HTTPError, YMApiError, ValueError, TypeError) as e:
                logger.warning("Server clock offset unavailable, using 0: %r", e)
                return 0
            self._cached = ServerOffset(seconds=seconds, fetched_at=self._clock.monotonic())
            logger.debug("Server clock offset: %+d s", seconds)
            return seconds

    async def timestamp(self) -> int:
        """Current unix time in seconds as the server sees it."""
        offset = await self.offset()
        return int(self._clock.time() + offset)

    def _is_fresh(self) -> bool:
        if self._cached is None:
            return False
        return self._clock.monotonic() - self._cached.fetched_at < self._ttl

    async def _fetch_with_retry(self) -> int:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._attempts),
            retry=retry_if_exception_type((httpx.HTTPError, ValueError, TypeError)),
            sleep=self._clock.sleep,
            reraise=True,
        )
        return await retrying(self._fetch_once)

    async def _fetch_once(self) -> int:
        raw = await self._http.send_raw("GET", api_request(), timeout_seconds=self._timeout)
        date_header = raw.headers.get("date")
        if not date_header:
            raise ValueError("Date header missing")
        server_time = int(parsedate_to_datetime(date_header).timestamp())
        local_time = int(self._clock.time())
        return server_time - local_time
