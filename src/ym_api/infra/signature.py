"""Request signatures checked by the server.

Two schemes, both keyed by client-side constants that the server matches
exactly (see AppConfig.signature_key / direct_link_salt):

* download-info signature: HMAC-SHA256 over
  `ts + track_id + quality + codecs + transports` with commas removed,
  base64 encoded without `=` padding;
* direct-link signature: MD5 hex of `salt + path[1:] + s`, where `host`,
  `path`, `ts` and `s` come from the `<download-info>` XML document.
"""

from __future__ import annotations

import base64
import hashlib
import hmac

from ..config.settings import AppConfig
from ..config.urls import get_direct_link_url

_DEFAULTS = AppConfig.model_fields


class SignatureEngine:
    def __init__(
        self,
        signature_key: str = _DEFAULTS["signature_key"].default,
        direct_link_salt: str = _DEFAULTS["direct_link_salt"].default,
    ) -> None:
        self._key = signature_key.encode("utf-8")
        self._salt = direct_link_salt

    def sign_download_info(
        self,
        ts: int | str,
        track_id: int | str,
        quality: str,
        codecs: str,
        transports: str,
    ) -> str:
        message = f"{ts}{track_id}{quality}{codecs}{transports}".replace(",", "")
        digest = hmac.new(self._key, message.encode("utf-8"), hashlib.sha256).digest()
        return base64.b64encode(digest).decode("ascii").rstrip("=")

    def direct_link_sign(self, path: str, s: str) -> str:
        # Only the hash drops the leading slash; the URL keeps it
        return hashlib.md5((self._salt + path[1:] + s).encode("utf-8")).hexdigest()

    def direct_link(self, host: str, path: str, ts: str, s: str) -> str:
        return get_direct_link_url(host, self.direct_link_sign(path, s), ts, path)
