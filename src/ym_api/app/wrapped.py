from __future__ import annotations

import logging
from typing import Any, Optional, Union

from ..core.domain.enums import DownloadTrackCodec, DownloadTrackQuality, Transport
from ..core.domain.models import DownloadInfo
from ..core.errors import AuthRequired, DownloadInfoMissing, DownloadUrlNotFound, YMApiError
from ..core.ports.url_extractor_port import UrlExtractorPort
from ..infra.schemas import InitResponse
from ..infra.stream_crypto import is_encrypted
from ..infra.url_extractor import UrlExtractor
from .api import YMApi

logger = logging.getLogger(__name__)

BEST_CODEC_ORDER = (DownloadTrackCodec.FLAC, DownloadTrackCodec.AAC, DownloadTrackCodec.MP3)

IdOrUrl = Union[int, str]


class WrappedYMApi:
    """Convenience layer over YMApi that accepts web links as well as ids.

    Any `str` argument is treated as a music.yandex.ru URL and run through the
    URL extractor; `int` arguments are used as ids directly.
    """

    def __init__(self, api: YMApi, url_extractor: Optional[UrlExtractorPort] = None) -> None:
        self._api = api
        self._urls = url_extractor or UrlExtractor()

    @property
    def api(self) -> YMApi:
        return self._api

    async def init(self, **kwargs: Any) -> InitResponse:
        return await self._api.init(**kwargs)

    def _track_id(self, track: IdOrUrl) -> int:
        return self._urls.extract_track_id(track) if isinstance(track, str) else track

    def _album_id(self, album: IdOrUrl) -> int:
        return self._urls.extract_album_id(album) if isinstance(album, str) else album

    def _artist_id(self, artist: IdOrUrl) -> int:
        return self._urls.extract_artist_id(artist) if isinstance(artist, str) else artist

    async def get_track(self, track: IdOrUrl) -> Any:
        return await self._api.get_single_track(self._track_id(track))

    async def get_album(self, album: IdOrUrl, with_tracks: bool = False) -> Any:
        return await self._api.get_album(self._album_id(album), with_tracks)

    async def get_album_with_tracks(self, album: IdOrUrl) -> Any:
        return await self._api.get_album_with_tracks(self._album_id(album))

    async def get_artist(self, artist: IdOrUrl) -> Any:
        return await self._api.get_artist(self._artist_id(artist))

    async def get_playlist(self, playlist: IdOrUrl, user: Union[int, str, None] = None) -> Any:
        if isinstance(playlist, str):
            playlist_id, owner = self._urls.extract_playlist_id(playlist)
        else:
            playlist_id, owner = playlist, (str(user) if user else None)
        if isinstance(playlist_id, int):
            return await self._api.get_playlist(playlist_id, owner)
        return await self._api.get_playlist(playlist_id)

    # --- downloads ---------------------------------------------------

    async def get_concrete_download_info(
        self,
        track: IdOrUrl,
        codec: Union[DownloadTrackCodec, str],
        quality: Union[DownloadTrackQuality, str] = DownloadTrackQuality.LOSSLESS,
        transport: Union[Transport, str] = Transport.RAW,
    ) -> DownloadInfo:
        codec = DownloadTrackCodec(codec)
        response = await self._api.get_track_download_info_new(
            self._track_id(track), quality, codecs=codec.value, transport=transport
        )
        info = response.download_info
        url = info.first_url
        if not url:
            raise DownloadInfoMissing("Download info not found")
        return DownloadInfo(
            codec=codec.value,
            quality=info.quality or DownloadTrackQuality(quality).value,
            download_info_url=url,
            bitrate_in_kbps=info.bitrate,
            gain=info.gain,
            preview=False,
            direct=True,
            encrypted=is_encrypted(url),
        )

    async def get_mp3_download_info(self, track: IdOrUrl, quality=DownloadTrackQuality.LOSSLESS) -> DownloadInfo:
        return await self.get_concrete_download_info(track, DownloadTrackCodec.MP3, quality)

    async def get_aac_download_info(self, track: IdOrUrl, quality=DownloadTrackQuality.LOSSLESS) -> DownloadInfo:
        return await self.get_concrete_download_info(track, DownloadTrackCodec.AAC, quality)

    async def get_flac_download_info(self, track: IdOrUrl, quality=DownloadTrackQuality.LOSSLESS) -> DownloadInfo:
        return await self.get_concrete_download_info(track, DownloadTrackCodec.FLAC, quality)

    async def get_legacy_download_info(
        self,
        track: IdOrUrl,
        codec: Union[DownloadTrackCodec, str] = DownloadTrackCodec.MP3,
        quality: Union[DownloadTrackQuality, str] = DownloadTrackQuality.LOSSLESS,
    ) -> DownloadInfo:
        """Highest-bitrate entry for `codec` from the legacy download-info list."""
        codec = DownloadTrackCodec(codec)
        items = await self._api.get_track_download_info(self._track_id(track), quality)
        matching = [item for item in items if item.codec == codec.value and not item.preview]
        if not matching:
            raise DownloadInfoMissing(f"No {codec.value} download info for track {track}")
        best = max(matching, key=lambda item: item.bitrate_in_kbps)
        return DownloadInfo(
            codec=best.codec,
            quality=DownloadTrackQuality(quality).value,
            download_info_url=best.download_info_url,
            bitrate_in_kbps=best.bitrate_in_kbps,
            gain=best.gain,
            preview=best.preview,
            direct=best.direct,
        )

    async def resolve_link(self, info: DownloadInfo, short: bool = False) -> str:
        """Final download URL for a descriptor.

        Direct descriptors already point at the file; the others point at a
        `<download-info>` document that still has to be signed.
        """
        if not info.direct:
            return await self._api.get_track_direct_link(info.download_info_url, short)
        if short:
            return await self._api.shorten_link(info.download_info_url)
        return info.download_info_url

    async def get_mp3_download_url(self, track: IdOrUrl, short: bool = False, quality=DownloadTrackQuality.HIGH) -> str:
        return await self.resolve_link(await self.get_mp3_download_info(track, quality), short)

    async def get_aac_download_url(self, track: IdOrUrl, short: bool = False, quality=DownloadTrackQuality.HIGH) -> str:
        return await self.resolve_link(await self.get_aac_download_info(track, quality), short)

    async def get_flac_download_url(self, track: IdOrUrl, short: bool = False, quality=DownloadTrackQuality.HIGH) -> str:
        return await self.resolve_link(await self.get_flac_download_info(track, quality), short)

    async def get_best_download_url(
        self,
        track: IdOrUrl,
        short: bool = False,
        quality: Union[DownloadTrackQuality, str] = DownloadTrackQuality.HIGH,
    ) -> str:
        """First link that resolves in FLAC, AAC, MP3 order."""
        track_id = self._track_id(track)
        for codec in BEST_CODEC_ORDER:
            try:
                info = await self.get_concrete_download_info(track_id, codec, quality)
                return await self.resolve_link(info, short)
            except AuthRequired:
                raise
            except YMApiError as e:
                logger.debug("No %s link for track %s: %s", codec.value, track_id, e)
        raise DownloadUrlNotFound(f"No download URL found for track {track_id}")
