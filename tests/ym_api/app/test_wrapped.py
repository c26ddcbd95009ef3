from __future__ import annotations

import asyncio
from typing import Any

import pytest

from ym_api.app.wrapped import WrappedYMApi
from ym_api.core.domain.enums import DownloadTrackCodec
from ym_api.core.errors import AuthRequired, DownloadInfoMissing, DownloadUrlNotFound, ExtractionFailed, HttpError
from ym_api.infra.schemas import FileInfoResponse, LegacyDownloadInfo


def _run(coro):
    return asyncio.run(coro)


class FakeApi:
    """Records calls and serves canned download info per codec."""

    def __init__(self, file_infos: dict[str, Any] | None = None, legacy: list[dict[str, Any]] | None = None) -> None:
        self.calls: list[tuple[str, tuple, dict]] = []
        self.file_infos = file_infos or {}
        self.legacy = legacy or []

    async def init(self, **kwargs):
        self.calls.append(("init", (), kwargs))

    async def get_single_track(self, track_id):
        self.calls.append(("get_single_track", (track_id,), {}))
        return {"id": str(track_id)}

    async def get_album(self, album_id, with_tracks=False):
        self.calls.append(("get_album", (album_id, with_tracks), {}))
        return {"id": album_id}

    async def get_album_with_tracks(self, album_id):
        self.calls.append(("get_album_with_tracks", (album_id,), {}))
        return {"id": album_id, "volumes": []}

    async def get_artist(self, artist_id):
        self.calls.append(("get_artist", (artist_id,), {}))
        return {"artist": {"id": artist_id}}

    async def get_playlist(self, playlist_id, user=None):
        self.calls.append(("get_playlist", (playlist_id, user), {}))
        return {"kind": playlist_id}

    async def get_track_download_info_new(self, track_id, quality, codecs, transport):
        self.calls.append(("get_track_download_info_new", (track_id, quality), {"codecs": codecs, "transport": transport}))
        info = self.file_infos.get(codecs)
        if isinstance(info, Exception):
            raise info
        if info is None:
            raise HttpError(404, "Not Found", "no such codec")
        return FileInfoResponse.model_validate({"downloadInfo": info})

    async def get_track_download_info(self, track_id, quality):
        self.calls.append(("get_track_download_info", (track_id, quality), {}))
        return [LegacyDownloadInfo.model_validate(item) for item in self.legacy]

    async def get_track_direct_link(self, url, short=False):
        self.calls.append(("get_track_direct_link", (url, short), {}))
        return f"signed:{url}"

    async def shorten_link(self, url):
        return f"short:{url}"


def test_urls_are_resolved_to_ids():
    api = FakeApi()
    wrapped = WrappedYMApi(api)

    async def scenario():
        await wrapped.get_track("https://music.yandex.ru/album/1/track/2")
        await wrapped.get_track(3)
        await wrapped.get_album("https://music.yandex.ru/album/10", with_tracks=True)
        await wrapped.get_album_with_tracks(11)
        await wrapped.get_artist("https://music.yandex.ru/artist/20")
        await wrapped.get_playlist("https://music.yandex.ru/users/bob/playlists/5")
        await wrapped.get_playlist("https://music.yandex.ru/playlists/ar.uuid-1")
        await wrapped.get_playlist(6, user=42)

    _run(scenario())
    assert [(name, args) for name, args, _ in api.calls] == [
        ("get_single_track", (2,)),
        ("get_single_track", (3,)),
        ("get_album", (10, True)),
        ("get_album_with_tracks", (11,)),
        ("get_artist", (20,)),
        ("get_playlist", (5, "bob")),
        ("get_playlist", ("ar.uuid-1", None)),
        ("get_playlist", (6, "42")),
    ]


def test_bad_url_raises_extraction_failed():
    with pytest.raises(ExtractionFailed):
        _run(WrappedYMApi(FakeApi()).get_album("https://music.yandex.ru/artist/1"))


def test_concrete_download_info_uses_first_url_and_flags_encryption():
    api = FakeApi({"mp3": {"quality": "high", "codec": "mp3", "bitrate": 320, "urls": ["https://strm/music-v2/crypt/a?kts=1f"]}})
    info = _run(WrappedYMApi(api).get_mp3_download_info("https://music.yandex.ru/track/9"))

    assert info.codec == "mp3"
    assert info.quality == "high"
    assert info.bitrate_in_kbps == 320
    assert info.download_info_url == "https://strm/music-v2/crypt/a?kts=1f"
    assert info.direct is True
    assert info.encrypted is True
    name, args, kwargs = api.calls[-1]
    assert args[0] == 9
    assert kwargs == {"codecs": "mp3", "transport": "raw"}


def test_missing_url_raises_instead_of_empty_descriptor():
    api = FakeApi({"flac": {"codec": "flac", "urls": []}})
    with pytest.raises(DownloadInfoMissing):
        _run(WrappedYMApi(api).get_flac_download_info(1))


def test_best_download_url_prefers_flac():
    api = FakeApi(
        {
            "flac": {"codec": "flac", "url": "https://strm/a.flac"},
            "mp3": {"codec": "mp3", "url": "https://strm/a.mp3"},
        }
    )
    assert _run(WrappedYMApi(api).get_best_download_url(1)) == "https://strm/a.flac"


def test_best_download_url_falls_back_in_order():
    api = FakeApi({"flac": {"codec": "flac", "urls": []}, "mp3": {"codec": "mp3", "url": "https://strm/a.mp3"}})
    assert _run(WrappedYMApi(api).get_best_download_url(1, short=True)) == "short:https://strm/a.mp3"
    tried = [kwargs["codecs"] for name, _, kwargs in api.calls if name == "get_track_download_info_new"]
    assert tried == ["flac", "aac", "mp3"]


def test_best_download_url_raises_when_nothing_resolves():
    with pytest.raises(DownloadUrlNotFound):
        _run(WrappedYMApi(FakeApi()).get_best_download_url(1))


def test_best_download_url_does_not_hide_auth_errors():
    api = FakeApi({"flac": AuthRequired("User token is missing")})
    with pytest.raises(AuthRequired):
        _run(WrappedYMApi(api).get_best_download_url(1))


def test_legacy_download_info_picks_highest_bitrate_and_signs_link():
    legacy = [
        {"codec": "mp3", "downloadInfoUrl": "https://s/128", "bitrateInKbps": 128, "direct": False},
        {"codec": "mp3", "downloadInfoUrl": "https://s/320", "bitrateInKbps": 320, "direct": False},
        {"codec": "aac", "downloadInfoUrl": "https://s/aac", "bitrateInKbps": 256, "direct": False},
        {"codec": "mp3", "downloadInfoUrl": "https://s/preview", "bitrateInKbps": 999, "preview": True},
    ]
    wrapped = WrappedYMApi(FakeApi(legacy=legacy))

    async def scenario():
        info = await wrapped.get_legacy_download_info(1, DownloadTrackCodec.MP3)
        return info, await wrapped.resolve_link(info)

    info, link = _run(scenario())
    assert info.download_info_url == "https://s/320"
    assert info.direct is False
    assert link == "signed:https://s/320"


def test_legacy_download_info_missing_codec():
    with pytest.raises(DownloadInfoMissing):
        _run(WrappedYMApi(FakeApi(legacy=[])).get_legacy_download_info(1, "flac"))
