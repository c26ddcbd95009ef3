from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Mapping, Optional, TYPE_CHECKING

import httpx

from ..config.settings import DEFAULT_USER_AGENT
from ..core.domain.models import ParsedBody
from ..core.errors import HttpError, NetworkError
from ..core.ports.clock_port import ClockPort, SystemClock
from .body import decompress, decompress_bytes, parse_body
from .queue import ConcurrencyQueue
from .request import Request
from .retry import RetryPolicy, build_retrying

if TYPE_CHECKING:
    from ..core.ports.cache_port import CachePort
    from ..core.ports.rate_limiter_port import RateLimiterPort
    from .preprocess import RequestPreprocessor

logger = logging.getLogger(__name__)

ACCEPT_ENCODING = "gzip, deflate, br"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
BODY_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

DEFAULT_HEADERS: dict[str, str] = {
    "Accept": "application/json, text/plain, */*",
    "Accept-Encoding": ACCEPT_ENCODING,
    "User-Agent": DEFAULT_USER_AGENT,
    "X-Yandex-Music-Client": DEFAULT_USER_AGENT,
}


@dataclass(frozen=True)
class RawResponse:
    """A fully read response whose body is still content-encoded."""

    status_code: int
    reason: str
    headers: httpx.Headers
    content: bytes
    url: str
    content_encoding: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def data(self) -> bytes:
        return decompress_bytes(self.content, self.content_encoding)

    def text(self) -> str:
        return decompress(self.content, self.content_encoding)


def cache_key(method: str, url: str, body: Optional[str]) -> str:
    return f"{method}:{url}:{body or ''}"


def _retrieve_exception(task: asyncio.Task[ParsedBody]) -> None:
    # Every caller may have been cancelled; mark the failure as seen
    if not task.cancelled() and task.exception() is not None:
        logger.debug("Shared request failed: %r", task.exception())


class HttpClient:
    """Async HTTP transport shared by every API call of one client instance.

    Per request: merge headers, serve GETs from the cache, join an identical
    GET already in flight, otherwise queue, rate limit, send with retry,
    decompress, parse and (GET only) cache the parsed body.

    The cookie jar, cache, in-flight map, limiter and queue all belong to this
    instance; nothing is shared between instances.
    """

    def __init__(
        self,
        base_headers: Optional[Mapping[str, str]] = None,
        timeout_seconds: float = 10.0,
        retry_policy: Optional[RetryPolicy] = None,
        max_concurrent: int = 50,
        rate_limiter: Optional["RateLimiterPort"] = None,
        cache: Optional["CachePort[ParsedBody]"] = None,
        clock: Optional[ClockPort] = None,
        preprocessor: Optional["RequestPreprocessor"] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            follow_redirects=True,
            max_redirects=10,
            transport=transport,
        )
        self._default_headers = httpx.Headers(DEFAULT_HEADERS)
        if base_headers:
            self._default_headers.update(base_headers)
        self._retry_policy = retry_policy or RetryPolicy()
        self._queue = ConcurrencyQueue(max_concurrent)
        self._rate_limiter = rate_limiter
        self._cache = cache
        self._clock = clock or SystemClock()
        self._preprocessor = preprocessor
        self._inflight: dict[str, asyncio.Task[ParsedBody]] = {}

    @property
    def cookies(self) -> httpx.Cookies:
        return self._client.cookies

    @property
    def default_headers(self) -> httpx.Headers:
        return self._default_headers

    @property
    def queue(self) -> ConcurrencyQueue:
        return self._queue

    def set_default_headers(self, headers: Mapping[str, str]) -> None:
        self._default_headers.update(headers)

    def inflight_count(self) -> int:
        return len(self._inflight)

    def clear_cache(self) -> None:
        if self._cache is not None:
            self._cache.clear()

    async def get(self, req: Request, use_cache: bool = True) -> ParsedBody:
        return await self._request("GET", req, use_cache)

    async def post(self, req: Request) -> ParsedBody:
        return await self._request("POST", req, False)

    async def put(self, req: Request) -> ParsedBody:
        return await self._request("PUT", req, False)

    async def delete(self, req: Request) -> ParsedBody:
        return await self._request("DELETE", req, False)

    async def send_raw(self, method: str, req: Request, timeout_seconds: Optional[float] = None) -> RawResponse:
        """Send once, bypassing cache, queue, limiter and retry."""
        headers = self._merge_headers(req)
        body = self._serialize_body(method, req, headers)
        timeout = httpx.Timeout(timeout_seconds) if timeout_seconds is not None else None
        return await self._send(method, req.get_url(), headers, body, timeout=timeout)

    async def _request(self, method: str, req: Request, use_cache: bool) -> ParsedBody:
        url = req.get_url()
        headers = self._merge_headers(req)
        body = self._serialize_body(method, req, headers)
        key = cache_key(method, url, body)
        cacheable = method == "GET" and use_cache and self._cache is not None

        if cacheable:
            cached = self._cache.get(key)  # type: ignore[union-attr]
            if cached is not None:
                logger.debug("Cache hit: %s", key)
                return cached

        if method != "GET":
            return await self._execute(method, url, headers, body)

        task = self._inflight.get(key)
        if task is not None:
            logger.debug("Joining in-flight request: %s", key)
        else:
            task = asyncio.create_task(self._execute_tracked(key, method, url, headers, body, cacheable))
            task.add_done_callback(_retrieve_exception)
            self._inflight[key] = task
        # A cancelled caller must not cancel the call other callers share
        return await asyncio.shield(task)

    async def _execute_tracked(
        self,
        key: str,
        method: str,
        url: str,
        headers: httpx.Headers,
        body: Optional[str],
        cacheable: bool,
    ) -> ParsedBody:
        try:
            parsed = await self._execute(method, url, headers, body)
            if cacheable:
                self._cache.set(key, parsed)  # type: ignore[union-attr]
            return parsed
        finally:
            self._inflight.pop(key, None)

    async def _execute(self, method: str, url: str, headers: httpx.Headers, body: Optional[str]) -> ParsedBody:
        raw = await self._queue.run(lambda: self._send_with_retry(method, url, headers, body))
        text = raw.text()
        if not raw.is_success:
            raise HttpError(raw.status_code, raw.reason, text, url=url)
        return parse_body(text, raw.headers.get("content-type"))

    async def _send_with_retry(
        self,
        method: str,
        url: str,
        headers: httpx.Headers,
        body: Optional[str],
    ) -> RawResponse:
        retrying = build_retrying(self._retry_policy, sleep=self._clock.sleep)
        try:
            raw = await retrying(self._send_limited, method, url, headers, body)
            if self._preprocessor is not None and self._preprocessor.should_retry(raw.status_code, raw.text()):
                raw = await self._send_limited(method, url, headers, body)
        except httpx.TransportError as e:
            raise NetworkError(f"{method} {url} failed after retries: {e!r}") from e
        return raw

    async def _send_limited(
        self,
        method: str,
        url: str,
        headers: httpx.Headers,
        body: Optional[str],
    ) -> RawResponse:
        if self._rate_limiter is not None:
            await self._rate_limiter.wait()
        if self._preprocessor is not None:
            headers = await self._preprocessor.prepare(headers)
        return await self._send(method, url, headers, body)

    async def _send(
        self,
        method: str,
        url: str,
        headers: httpx.Headers,
        body: Optional[str],
        timeout: Optional[httpx.Timeout] = None,
    ) -> RawResponse:
        logger.debug("%s %s", method, url)
        request = self._client.build_request(
            method,
            url,
            headers=headers,
            content=body,
            timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
        )
        response = await self._client.send(request, stream=True)
        try:
            if response.is_stream_consumed:
                # Prebuilt responses arrive already decoded by httpx
                content, encoding = response.content, None
            else:
                content = b"".join([chunk async for chunk in response.aiter_raw()])
                encoding = response.headers.get("content-encoding")
        finally:
            await response.aclose()
        return RawResponse(
            status_code=response.status_code,
            reason=response.reason_phrase,
            headers=response.headers,
            content=content,
            url=str(response.url),
            content_encoding=encoding,
        )

    def _merge_headers(self, req: Request) -> httpx.Headers:
        headers = httpx.Headers(self._default_headers)
        headers.update(req.headers)
        headers["Accept-Encoding"] = ACCEPT_ENCODING
        return headers

    @staticmethod
    def _serialize_body(method: str, req: Request, headers: httpx.Headers) -> Optional[str]:
        if method not in BODY_METHODS or not req.body_data:
            return None
        if isinstance(req.body_data, str):
            return req.body_data
        content_type = headers.get("content-type")
        if content_type is None:
            headers["content-type"] = FORM_CONTENT_TYPE
            return req.get_body_data_string()
        if FORM_CONTENT_TYPE in content_type.lower():
            return req.get_body_data_string()
        return json.dumps(req.body_data, ensure_ascii=False, separators=(",", ":"))

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.aclose()
