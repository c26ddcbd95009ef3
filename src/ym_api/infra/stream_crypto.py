"""Decryption of `encraw` audio streams.

Encrypted stream URLs live under `/music-v2/crypt/` and carry a `kts` query
parameter: a hex counter that seeds AES-128-CTR. The IV is that counter as a
16-byte big-endian block; the key is a fixed client constant.
"""

from __future__ import annotations

import logging
import re
from collections.abc import AsyncIterator, Iterable, Iterator
from typing import TYPE_CHECKING

from Crypto.Cipher import AES

from ..config.settings import AppConfig
from ..core.errors import HttpError
from .request import direct_link_request

if TYPE_CHECKING:
    from .http_client import HttpClient

logger = logging.getLogger(__name__)

KTS_RE = re.compile(r"kts=([a-f0-9]+)")
ENCRYPTED_PATH_MARKER = "/music-v2/crypt/"
_COUNTER_MASK = (1 << 128) - 1


def extract_kts(url: str) -> int:
    """Counter encoded in the `kts` parameter, 0 when absent."""
    match = KTS_RE.search(url)
    if match is None:
        return 0
    return int(match.group(1), 16)


def is_encrypted(url: str) -> bool:
    return ENCRYPTED_PATH_MARKER in url and "kts=" in url


def counter_block(value: int) -> bytes:
    return (value & _COUNTER_MASK).to_bytes(16, "big")


class StreamDecryptor:
    def __init__(self, key_hex: str = AppConfig.model_fields["stream_key"].default) -> None:
        self._key = bytes.fromhex(key_hex)
        if len(self._key) != 16:
            raise ValueError("stream key must be 16 bytes (32 hex characters)")

    def _cipher(self, counter: int):
        return AES.new(self._key, AES.MODE_CTR, nonce=b"", initial_value=counter_block(counter))

    def decrypt(self, data: bytes, counter: int = 0) -> bytes:
        return self._cipher(counter).decrypt(data)

    def iter_decrypt(self, chunks: Iterable[bytes], counter: int = 0) -> Iterator[bytes]:
        """Decrypt a chunked stream; chunk boundaries may fall anywhere."""
        cipher = self._cipher(counter)
        for chunk in chunks:
            yield cipher.decrypt(chunk)

    async def aiter_decrypt(self, chunks: AsyncIterator[bytes], counter: int = 0) -> AsyncIterator[bytes]:
        cipher = self._cipher(counter)
        async for chunk in chunks:
            yield cipher.decrypt(chunk)

    async def fetch_and_decrypt(self, http_client: "HttpClient", url: str) -> bytes:
        """Download a stream URL and return its plaintext.

        URLs that are not encrypted are returned as downloaded.
        """
        raw = await http_client.send_raw("GET", direct_link_request(url))
        if not raw.is_success:
            raise HttpError(raw.status_code, raw.reason, raw.text(), url=url)
        data = raw.data()
        if not is_encrypted(url):
            return data
        counter = extract_kts(url)
        logger.debug("Decrypting %d bytes (kts=%x)", len(data), counter)
        return self.decrypt(data, counter)
