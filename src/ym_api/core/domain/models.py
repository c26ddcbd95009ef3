from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Optional

from .enums import BodyKind, DownloadTrackQuality


@dataclass(frozen=True)
class ParsedBody:
    kind: BodyKind
    value: Any

    @property
    def is_json(self) -> bool:
        return self.kind is BodyKind.JSON

    @property
    def is_xml(self) -> bool:
        return self.kind is BodyKind.XML

    @staticmethod
    def json(value: Any) -> "ParsedBody":
        return ParsedBody(kind=BodyKind.JSON, value=value)

    @staticmethod
    def xml(value: Any) -> "ParsedBody":
        return ParsedBody(kind=BodyKind.XML, value=value)

    @staticmethod
    def text(value: str) -> "ParsedBody":
        return ParsedBody(kind=BodyKind.TEXT, value=value)


@dataclass
class AuthSession:
    token: str = ""
    uid: int = 0
    username: Optional[str] = None
    password: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    @property
    def token_preview(self) -> str:
        return f"{self.token[:8]}..." if len(self.token) > 8 else "***"


@dataclass(frozen=True)
class ServerOffset:
    seconds: int
    fetched_at: float


@dataclass(frozen=True)
class DownloadInfo:
    """A fully populated download descriptor for one codec."""

    codec: str
    quality: DownloadTrackQuality | str
    download_info_url: str
    bitrate_in_kbps: int = 0
    gain: bool = False
    preview: bool = False
    direct: bool = True
    encrypted: bool = False

    def with_updates(self, **kwargs) -> "DownloadInfo":
        return replace(self, **kwargs)
