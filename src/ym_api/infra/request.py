from __future__ import annotations

from typing import Any, Mapping, MutableMapping, Optional, Union
from urllib.parse import urlencode, urlsplit

from ..config.urls import API_BASE_URL, CLCK_BASE_URL, OAUTH_BASE_URL

BodyData = Union[MutableMapping[str, Any], str]


class Request:
    """Mutable description of one outgoing HTTP request.

    Setters return the same instance so calls can be chained:

        Request.from_url("https://api.music.yandex.net").set_path("/feed").add_headers({...})

    Nothing is validated here; a malformed scheme or host only fails once the
    transport tries to connect.
    """

    def __init__(
        self,
        scheme: str,
        host: str,
        port: Optional[int] = None,
        path: str = "",
        headers: Optional[Mapping[str, str]] = None,
        query: Optional[Mapping[str, str]] = None,
        body_data: Optional[BodyData] = None,
    ) -> None:
        self.scheme = scheme
        self.host = host
        self.port = port
        self.path = path
        self.headers: dict[str, str] = dict(headers or {})
        self.query: dict[str, str] = dict(query or {})
        self.body_data: BodyData = body_data if isinstance(body_data, str) else dict(body_data or {})

    @classmethod
    def from_url(cls, base_url: str) -> "Request":
        """Build from a base URL, keeping only scheme, host and port."""
        parts = urlsplit(base_url)
        scheme = parts.scheme
        port = parts.port or (443 if scheme == "https" else 80)
        return cls(scheme=scheme, host=parts.hostname or "", port=port)

    @classmethod
    def from_full_url(cls, url: str) -> "Request":
        """Build from a complete URL; its path and query string become the path."""
        parts = urlsplit(url)
        scheme = parts.scheme
        path = parts.path + (f"?{parts.query}" if parts.query else "")
        return cls(
            scheme=scheme,
            host=parts.hostname or "",
            port=parts.port or (443 if scheme == "https" else 80),
            path=path,
        )

    def set_path(self, path: str) -> "Request":
        self.path = path
        return self

    def set_host(self, host: str) -> "Request":
        self.host = host
        return self

    def set_headers(self, headers: Mapping[str, str]) -> "Request":
        self.headers = dict(headers)
        return self

    def add_headers(self, headers: Mapping[str, str]) -> "Request":
        self.headers.update(headers)
        return self

    def set_query(self, query: Mapping[str, str]) -> "Request":
        self.query = dict(query)
        return self

    def add_query(self, query: Mapping[str, str]) -> "Request":
        self.query.update(query)
        return self

    def set_body_data(self, body_data: BodyData) -> "Request":
        self.body_data = body_data if isinstance(body_data, str) else dict(body_data)
        return self

    def add_body_data(self, body_data: Mapping[str, Any]) -> "Request":
        if isinstance(self.body_data, str) or not self.body_data:
            self.body_data = dict(body_data)
        else:
            self.body_data.update(body_data)
        return self

    def get_query_string(self) -> str:
        if not self.query:
            return ""
        # A path built from a full URL may already carry a query string.
        sep = "&" if "?" in self.path else "?"
        return sep + urlencode(self.query)

    def get_body_data_string(self) -> str:
        if isinstance(self.body_data, str):
            return self.body_data
        return urlencode(self.body_data, doseq=True)

    def get_uri(self) -> str:
        uri = f"{self.scheme}://{self.host}"
        if self.port:
            uri += f":{self.port}"
        if self.path:
            uri += self.path
        return uri

    def get_url(self) -> str:
        return self.get_uri() + self.get_query_string()

    def __repr__(self) -> str:
        return f"Request({self.get_url()!r})"


def api_request() -> Request:
    return Request.from_url(API_BASE_URL)


def auth_request() -> Request:
    return Request.from_url(OAUTH_BASE_URL)


def clck_request() -> Request:
    return Request.from_url(CLCK_BASE_URL)


def direct_link_request(url: str) -> Request:
    return Request.from_full_url(url)
