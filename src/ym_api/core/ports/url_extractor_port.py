from __future__ import annotations

from typing import Protocol


class UrlExtractorPort(Protocol):
    def extract_track_id(self, url: str) -> int:
        """Return the numeric track id or raise ExtractionFailed."""
        ...

    def extract_album_id(self, url: str) -> int:
        ...

    def extract_artist_id(self, url: str) -> int:
        ...

    def extract_playlist_id(self, url: str) -> tuple[int | str, str | None]:
        """Return (playlist id, owning username or None)."""
        ...
