from __future__ import annotations

import re
from typing import Optional, Union

from ..core.errors import ExtractionFailed
from ..core.ports.url_extractor_port import UrlExtractorPort

_HOST = r"(?:https?://)?music\.yandex\.ru"

TRACK_SHORT_RE = re.compile(_HOST + r"/track/(?P<id>\d+)")
TRACK_IN_ALBUM_RE = re.compile(_HOST + r"/album/\d+/track/(?P<id>\d+)")
ALBUM_RE = re.compile(_HOST + r"/album/(?P<id>\d+)")
ARTIST_RE = re.compile(_HOST + r"/artist/(?P<id>\d+)")
USER_PLAYLIST_RE = re.compile(_HOST + r"/users/(?P<user>[\w\-.]+)/playlists/(?P<id>\d+)")
UUID_PLAYLIST_RE = re.compile(_HOST + r"/playlists?/(?P<uid>(?:ar\.)?[A-Za-z0-9\-]+)")


class UrlExtractor(UrlExtractorPort):
    """Pull entity ids out of music.yandex.ru web links."""

    def extract_track_id(self, url: str) -> int:
        match = TRACK_SHORT_RE.search(url) or TRACK_IN_ALBUM_RE.search(url)
        if match is None:
            raise ExtractionFailed(url, "track")
        return int(match.group("id"))

    def extract_album_id(self, url: str) -> int:
        return int(self._search(ALBUM_RE, url, "album").group("id"))

    def extract_artist_id(self, url: str) -> int:
        return int(self._search(ARTIST_RE, url, "artist").group("id"))

    def extract_playlist_id(self, url: str) -> tuple[Union[int, str], Optional[str]]:
        """Return `(kind, user)` for user playlists or `(uuid, None)` for shared ones."""
        # /users/<user>/playlists/<id> would otherwise match the uuid form
        if "/users/" in url and "/playlists/" in url:
            match = self._search(USER_PLAYLIST_RE, url, "playlist")
            return int(match.group("id")), match.group("user")
        if "/playlists/" in url or "/playlist/" in url:
            match = self._search(UUID_PLAYLIST_RE, url, "playlist")
            return match.group("uid"), None
        raise ExtractionFailed(url, "playlist")

    @staticmethod
    def _search(pattern: re.Pattern[str], url: str, entity: str) -> re.Match[str]:
        match = pattern.search(url)
        if match is None:
            raise ExtractionFailed(url, entity)
        return match
