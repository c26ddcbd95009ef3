from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..core.errors import YMApiError
from ..core.ports.link_shortener_port import LinkShortenerPort
from .request import clck_request

if TYPE_CHECKING:
    from .http_client import HttpClient

logger = logging.getLogger(__name__)


class ClckLinkShortener(LinkShortenerPort):
    """Shorten links with the clck.ru redirect service (`GET /--?url=...`)."""

    def __init__(self, http_client: "HttpClient") -> None:
        self._http = http_client

    async def shorten(self, url: str) -> str:
        req = clck_request().set_path("/--").add_query({"url": url})
        body = await self._http.get(req)
        short = str(body.value).strip()
        if not short.startswith("http"):
            raise YMApiError(f"Unexpected link shortener response: {short[:200]}", code="LINK_SHORTENER_ERROR")
        logger.debug("Shortened %s -> %s", url, short)
        return short
