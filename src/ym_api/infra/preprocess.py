from __future__ import annotations

import logging
import random
from collections.abc import Awaitable, Callable, Sequence
from typing import Protocol

import httpx

from ..core.ports.clock_port import SystemClock

logger = logging.getLogger(__name__)


class RequestPreprocessor(Protocol):
    async def prepare(self, headers: httpx.Headers) -> httpx.Headers:
        """Adjust outgoing headers right before an attempt is sent."""
        ...

    def should_retry(self, status_code: int, body: str) -> bool:
        """Return True to send the request once more after this response."""
        ...


DEFAULT_USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_4) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.4 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64; rv:125.0) Gecko/20100101 Firefox/125.0",
)
DEFAULT_LANGUAGES: tuple[str, ...] = ("ru-RU,ru;q=0.9,en;q=0.8", "en-US,en;q=0.9,ru;q=0.7")
CAPTCHA_MARKERS: tuple[str, ...] = ("captcha", "showcaptcha", "smartcaptcha")


class BrowserImpersonation(RequestPreprocessor):
    """Make requests look like a browser to get past anti-bot pages.

    Rotates User-Agent and Accept-Language per attempt, sleeps a random delay
    before each attempt and asks for one extra attempt when a 403 response
    carries a captcha page.
    """

    def __init__(
        self,
        user_agents: Sequence[str] = DEFAULT_USER_AGENTS,
        languages: Sequence[str] = DEFAULT_LANGUAGES,
        max_delay_seconds: float = 0.5,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        if not user_agents or not languages:
            raise ValueError("user_agents and languages must not be empty")
        self._user_agents = tuple(user_agents)
        self._languages = tuple(languages)
        self._max_delay = max_delay_seconds
        self._rng = rng or random.Random()
        self._sleep = sleep or SystemClock().sleep

    async def prepare(self, headers: httpx.Headers) -> httpx.Headers:
        out = httpx.Headers(headers)
        out["User-Agent"] = self._rng.choice(self._user_agents)
        out["Accept-Language"] = self._rng.choice(self._languages)
        if self._max_delay > 0:
            await self._sleep(self._rng.uniform(0, self._max_delay))
        return out

    def should_retry(self, status_code: int, body: str) -> bool:
        if status_code != 403:
            return False
        lowered = body.lower()
        hit = any(marker in lowered for marker in CAPTCHA_MARKERS)
        if hit:
            logger.warning("Captcha page received (403); retrying once with new browser headers")
        return hit
