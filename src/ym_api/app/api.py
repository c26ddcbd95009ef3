from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from ..config.settings import AppConfig
from ..config.urls import get_track_share_url
from ..core.domain.enums import (
    ALL_CODECS,
    ChartType,
    DownloadTrackQuality,
    SearchType,
    Transport,
)
from ..core.domain.models import AuthSession
from ..core.errors import (
    AuthRequired,
    DownloadInfoMissing,
    InvalidInput,
    InvalidUrl,
    TrackNotFound,
)
from ..core.ports.clock_port import ClockPort, SystemClock
from ..core.ports.link_shortener_port import LinkShortenerPort
from ..infra.http_client import HttpClient
from ..infra.request import Request, api_request, auth_request, direct_link_request
from ..infra.schemas import DirectLinkInfo, FileInfoResponse, InitResponse, LegacyDownloadInfo
from ..infra.server_clock import ServerClock
from ..infra.signature import SignatureEngine

logger = logging.getLogger(__name__)

DEVICE_HEADER = {
    "X-Yandex-Music-Device": (
        "os=unknown; os_version=unknown; manufacturer=unknown; model=unknown; "
        "clid=; device_id=unknown; uuid=unknown"
    ),
}
JSON_CONTENT_TYPE = {"content-type": "application/json"}
FORM_CONTENT_TYPE = {"content-type": "application/x-www-form-urlencoded"}
TRACK_PATH_RE = re.compile(r"/track/(?P<id>\d+)")

UserId = Union[int, str, None]
TrackId = Union[int, str]


def _flag(value: bool) -> str:
    return "true" if value else "false"


def _join_ids(ids: Iterable[Union[int, str]]) -> str:
    return ",".join(str(i) for i in ids)


def _compact_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


class YMApi:
    """Async client for the Yandex Music API.

    One instance holds one authenticated session. Call `init()` first; most
    endpoints send `Authorization: OAuth <token>`. Results are the unwrapped
    `result` of the API envelope as plain JSON values, except where a typed
    model is documented.

    Example:
        async with YMApi(HttpClient()) as api:
            await api.init(access_token="y0_...", uid=123)
            track = await api.get_single_track(12345)
    """

    def __init__(
        self,
        http_client: HttpClient,
        config: Optional[AppConfig] = None,
        signature: Optional[SignatureEngine] = None,
        server_clock: Optional[ServerClock] = None,
        link_shortener: Optional[LinkShortenerPort] = None,
        clock: Optional[ClockPort] = None,
    ) -> None:
        self._http = http_client
        self._config = config or AppConfig()
        self._signature = signature or SignatureEngine(
            self._config.signature_key, self._config.direct_link_salt
        )
        self._clock = clock or SystemClock()
        self._server_clock = server_clock or ServerClock(http_client, clock=self._clock)
        self._link_shortener = link_shortener
        self._session = AuthSession()

    @property
    def session(self) -> AuthSession:
        return self._session

    @property
    def http_client(self) -> HttpClient:
        return self._http

    # --- helpers -----------------------------------------------------

    def _auth_headers(self) -> dict[str, str]:
        if not self._session.is_authenticated:
            return {}
        return {"Authorization": f"OAuth {self._session.token}"}

    def _request(self, path: str) -> Request:
        return api_request().set_path(path).add_headers(self._auth_headers())

    def _resolve_user_id(self, user_id: UserId) -> Union[int, str]:
        if user_id is None or user_id == 0 or user_id == "":
            return self._session.uid
        return user_id

    def _require_auth(self) -> None:
        if not self._session.is_authenticated:
            raise AuthRequired("User token is missing")

    async def _get(self, req: Request) -> Any:
        return (await self._http.get(req)).value

    async def _post(self, req: Request) -> Any:
        return (await self._http.post(req)).value

    # --- auth --------------------------------------------------------

    async def init(
        self,
        access_token: Optional[str] = None,
        uid: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ) -> InitResponse:
        """Authenticate this instance.

        A token and uid are accepted as-is without a network call. Otherwise
        username and password are exchanged for a token via the OAuth
        password grant. Arguments not given fall back to the configuration.
        """
        access_token = access_token or self._config.access_token
        uid = uid or self._config.uid
        if access_token and uid:
            self._session.token = access_token
            self._session.uid = int(uid)
            logger.info("Authenticated uid=%s token=%s", uid, self._session.token_preview)
            return InitResponse(access_token=access_token, uid=int(uid))

        username = username or self._config.username
        password = password or self._config.password
        if not username or not password:
            raise AuthRequired("username && password || access_token && uid must be set")

        self._session.username = username
        self._session.password = password
        req = auth_request().set_path("/token").set_query(
            {
                "grant_type": "password",
                "username": username,
                "password": password,
                "client_id": self._config.oauth_client_id,
                "client_secret": self._config.oauth_client_secret,
            }
        )
        # Credentials are in the URL; keep them out of the cache
        body = await self._http.get(req, use_cache=False)
        try:
            data = InitResponse.model_validate(body.value)
        except ValidationError as e:
            raise AuthRequired(f"Token exchange returned an unexpected payload: {e.error_count()} error(s)") from e

        self._session.token = data.access_token
        self._session.uid = data.uid
        logger.info("Authenticated uid=%s token=%s", data.uid, self._session.token_preview)
        return data

    # --- account & feed ----------------------------------------------

    async def get_account_status(self) -> Any:
        return await self._get(self._request("/account/status"))

    async def get_feed(self) -> Any:
        return await self._get(self._request("/feed"))

    # --- landing -----------------------------------------------------

    async def get_chart(self, chart_type: Union[ChartType, str] = ChartType.RUSSIA) -> Any:
        return await self._get(self._request(f"/landing3/chart/{ChartType(chart_type).value}"))

    async def get_new_playlists(self) -> Any:
        return await self._get(self._request("/landing3/new-playlists"))

    async def get_new_releases(self) -> Any:
        return await self._get(self._request("/landing3/new-releases"))

    async def get_podcasts(self) -> Any:
        return await self._get(self._request("/landing3/podcasts"))

    async def get_genres(self) -> Any:
        return await self._get(self._request("/genres"))

    # --- search ------------------------------------------------------

    async def search(
        self,
        query: str,
        type: Union[SearchType, str] = SearchType.ALL,
        page: int = 0,
        nocorrect: bool = False,
        page_size: Optional[int] = None,
    ) -> Any:
        req = self._request("/search").set_query(
            {
                "type": SearchType(type).value,
                "text": query,
                "page": str(page),
                "nocorrect": _flag(nocorrect),
            }
        )
        if page_size is not None:
            req.add_query({"pageSize": str(page_size)})
        return await self._get(req)

    async def search_artists(self, query: str, page: int = 0, nocorrect: bool = False, page_size: Optional[int] = None) -> Any:
        return await self.search(query, SearchType.ARTIST, page, nocorrect, page_size)

    async def search_tracks(self, query: str, page: int = 0, nocorrect: bool = False, page_size: Optional[int] = None) -> Any:
        return await self.search(query, SearchType.TRACK, page, nocorrect, page_size)

    async def search_albums(self, query: str, page: int = 0, nocorrect: bool = False, page_size: Optional[int] = None) -> Any:
        return await self.search(query, SearchType.ALBUM, page, nocorrect, page_size)

    async def search_all(self, query: str, page: int = 0, nocorrect: bool = False, page_size: Optional[int] = None) -> Any:
        return await self.search(query, SearchType.ALL, page, nocorrect, page_size)

    # --- playlists ---------------------------------------------------

    async def get_user_playlists(self, user_id: UserId = None) -> Any:
        uid = self._resolve_user_id(user_id)
        return await self._get(self._request(f"/users/{uid}/playlists/list"))

    async def get_playlist(self, playlist_id: Union[int, str], user: UserId = None) -> Any:
        """Numeric ids are user playlists (kinds); string ids are shared playlist uuids."""
        if isinstance(playlist_id, int):
            uid = self._resolve_user_id(user)
            return await self._get(self._request(f"/users/{uid}/playlists/{playlist_id}"))
        normalized = playlist_id.replace("/playlists/", "/playlist/")
        req = self._request(f"/playlist/{normalized}").add_query({"richTracks": "true"})
        return await self._get(req)

    async def get_playlists(
        self,
        playlist_ids: Sequence[int],
        user: UserId = None,
        mixed: bool = False,
        rich_tracks: bool = False,
    ) -> Any:
        uid = self._resolve_user_id(user)
        req = self._request(f"/users/{uid}/playlists").set_query(
            {
                "kinds": _join_ids(playlist_ids),
                "mixed": _flag(mixed),
                "rich-tracks": _flag(rich_tracks),
            }
        )
        return await self._get(req)

    async def create_playlist(self, name: str, visibility: str = "private") -> Any:
        if not name:
            raise InvalidInput("Playlist name is required")
        self._require_auth()
        req = (
            self._request(f"/users/{self._session.uid}/playlists/create")
            .add_headers(FORM_CONTENT_TYPE)
            .set_body_data({"title": name, "visibility": visibility})
        )
        return await self._post(req)

    async def remove_playlist(self, playlist_id: int) -> Any:
        self._require_auth()
        return await self._post(self._request(f"/users/{self._session.uid}/playlists/{playlist_id}/delete"))

    async def rename_playlist(self, playlist_id: int, name: str) -> Any:
        if not name:
            raise InvalidInput("Playlist name is required")
        self._require_auth()
        req = self._request(f"/users/{self._session.uid}/playlists/{playlist_id}/name").set_body_data({"value": name})
        return await self._post(req)

    async def add_tracks_to_playlist(
        self,
        playlist_id: int,
        tracks: Sequence[Mapping[str, Any]],
        revision: int,
        at: int = 0,
    ) -> Any:
        """Insert `tracks` (each `{"id": ..., "albumId": ...}`) at position `at`."""
        self._require_auth()
        diff = [{"op": "insert", "at": at, "tracks": list(tracks)}]
        req = (
            self._request(f"/users/{self._session.uid}/playlists/{playlist_id}/change-relative")
            .add_headers(FORM_CONTENT_TYPE)
            .set_body_data({"diff": _compact_json(diff), "revision": str(revision)})
        )
        return await self._post(req)

    async def remove_tracks_from_playlist(
        self,
        playlist_id: int,
        tracks: Sequence[Mapping[str, Any]],
        revision: int,
        from_: int = 0,
        to: Optional[int] = None,
    ) -> Any:
        """Delete positions `[from_, to)`; `to` defaults to `len(tracks)`."""
        self._require_auth()
        diff = [
            {
                "op": "delete",
                "from": from_,
                "to": len(tracks) if to is None else to,
                "tracks": list(tracks),
            }
        ]
        req = self._request(f"/users/{self._session.uid}/playlists/{playlist_id}/change-relative").set_body_data(
            {"diff": _compact_json(diff), "revision": str(revision)}
        )
        return await self._post(req)

    # --- tracks ------------------------------------------------------

    async def get_track(self, track_id: TrackId) -> Any:
        return await self._get(self._request(f"/tracks/{track_id}").add_headers(JSON_CONTENT_TYPE))

    async def get_single_track(self, track_id: TrackId) -> Any:
        tracks = await self.get_track(track_id)
        if not isinstance(tracks, list) or not tracks:
            raise TrackNotFound(track_id)
        return tracks[0]

    async def get_track_supplement(self, track_id: TrackId) -> Any:
        return await self._get(self._request(f"/tracks/{track_id}/supplement"))

    async def get_similar_tracks(self, track_id: TrackId) -> Any:
        return await self._get(self._request(f"/tracks/{track_id}/similar"))

    async def get_track_download_info(
        self,
        track_id: TrackId,
        quality: Union[DownloadTrackQuality, str] = DownloadTrackQuality.LOSSLESS,
        can_use_streaming: bool = True,
    ) -> list[LegacyDownloadInfo]:
        """Legacy download-info list, signed for mp3 over raw transport."""
        ts = int(self._clock.time())
        quality = DownloadTrackQuality(quality).value
        sign = self._signature.sign_download_info(ts, track_id, quality, "mp3", Transport.RAW.value)
        req = self._request(f"/tracks/{track_id}/download-info").add_query(
            {"ts": str(ts), "can_use_streaming": _flag(can_use_streaming), "sign": sign}
        )
        items = await self._get(req)
        if not isinstance(items, list):
            raise DownloadInfoMissing(f"Unexpected download-info payload for track {track_id}")
        return [LegacyDownloadInfo.model_validate(item) for item in items]

    async def get_track_download_info_new(
        self,
        track_id: TrackId,
        quality: Union[DownloadTrackQuality, str] = DownloadTrackQuality.LOSSLESS,
        codecs: str = ALL_CODECS,
        transport: Union[Transport, str] = Transport.ENCRAW,
    ) -> FileInfoResponse:
        """File info from `/get-file-info`, signed with a server-corrected timestamp."""
        self._require_auth()
        ts = await self._server_clock.timestamp()
        quality = DownloadTrackQuality(quality).value
        transport = Transport(transport).value
        sign = self._signature.sign_download_info(ts, track_id, quality, codecs, transport)
        req = self._request("/get-file-info").add_query(
            {
                "ts": str(ts),
                "trackId": str(track_id),
                "quality": quality,
                "codecs": codecs,
                "transports": transport,
                "sign": sign,
            }
        )
        payload = await self._get(req)
        try:
            return FileInfoResponse.model_validate(payload)
        except ValidationError as e:
            raise DownloadInfoMissing(f"Unexpected get-file-info payload for track {track_id}") from e

    async def get_track_direct_link(self, track_download_url: str, short: bool = False) -> str:
        """Resolve a `downloadInfoUrl` into a signed, directly downloadable URL."""
        body = await self._http.get(direct_link_request(track_download_url))
        info = body.value.get("download-info") if isinstance(body.value, dict) else None
        if not info:
            raise DownloadInfoMissing("Download info missing in response")
        try:
            parts = DirectLinkInfo.model_validate(info)
        except ValidationError as e:
            raise DownloadInfoMissing("Download info is incomplete") from e

        link = self._signature.direct_link(parts.host, parts.path, parts.ts, parts.s)
        if short:
            return await self.shorten_link(link)
        return link

    async def shorten_link(self, url: str) -> str:
        if self._link_shortener is None:
            raise InvalidInput("No link shortener configured")
        return await self._link_shortener.shorten(url)

    def extract_track_id(self, url: str) -> int:
        match = TRACK_PATH_RE.search(url)
        if match is None:
            raise InvalidUrl(url)
        return int(match.group("id"))

    async def get_track_share_link(self, track: Union[TrackId, Mapping[str, Any]]) -> str:
        if isinstance(track, Mapping):
            data: Mapping[str, Any] = track
        else:
            data = await self.get_single_track(track)
        albums = data.get("albums") or []
        if not albums:
            raise InvalidInput(f"Track {data.get('id')} has no album to link to")
        return get_track_share_url(albums[0]["id"], data["id"])

    # --- albums ------------------------------------------------------

    async def get_album(self, album_id: Union[int, str], with_tracks: bool = False) -> Any:
        path = f"/albums/{album_id}/with-tracks" if with_tracks else f"/albums/{album_id}"
        return await self._get(self._request(path))

    async def get_album_with_tracks(self, album_id: Union[int, str]) -> Any:
        return await self.get_album(album_id, with_tracks=True)

    async def get_albums(self, album_ids: Sequence[Union[int, str]]) -> Any:
        return await self._post(self._request("/albums").set_body_data({"albumIds": _join_ids(album_ids)}))

    # --- artists -----------------------------------------------------

    async def get_artist(self, artist_id: Union[int, str]) -> Any:
        return await self._get(self._request(f"/artists/{artist_id}"))

    async def get_artists(self, artist_ids: Sequence[Union[int, str]]) -> Any:
        return await self._post(self._request("/artists").set_body_data({"artistIds": _join_ids(artist_ids)}))

    async def get_artist_tracks(self, artist_id: Union[int, str], page: int = 0, page_size: Optional[int] = None) -> Any:
        req = self._request(f"/artists/{artist_id}/tracks").set_query({"page": str(page)})
        if page_size is not None:
            req.add_query({"pageSize": str(page_size)})
        return await self._get(req)

    # --- likes -------------------------------------------------------

    async def get_liked_tracks(self, user_id: UserId = None) -> Any:
        uid = self._resolve_user_id(user_id)
        return await self._get(self._request(f"/users/{uid}/likes/tracks"))

    async def get_disliked_tracks(self, user_id: UserId = None) -> Any:
        uid = self._resolve_user_id(user_id)
        return await self._get(self._request(f"/users/{uid}/dislikes/tracks"))

    # --- rotor -------------------------------------------------------

    async def get_all_stations_list(self, language: Optional[str] = None) -> Any:
        req = self._request("/rotor/stations/list")
        if language:
            req.set_query({"language": language})
        return await self._get(req)

    async def get_recommended_stations_list(self) -> Any:
        return await self._get(self._request("/rotor/stations/dashboard"))

    async def get_station_tracks(self, station_id: str, queue: Optional[str] = None) -> Any:
        req = self._request(f"/rotor/station/{station_id}/tracks")
        if queue:
            req.add_query({"queue": queue})
        return await self._get(req)

    async def get_station_info(self, station_id: str) -> Any:
        return await self._get(self._request(f"/rotor/station/{station_id}/info"))

    async def create_rotor_session(self, seeds: Sequence[str], include_tracks_in_response: bool = True) -> Any:
        req = (
            self._request("/rotor/session/new")
            .add_headers(JSON_CONTENT_TYPE)
            .set_body_data({"seeds": list(seeds), "includeTracksInResponse": include_tracks_in_response})
        )
        return await self._post(req)

    async def post_rotor_session_tracks(
        self,
        session_id: str,
        queue: Optional[Sequence[str]] = None,
        batch_id: Optional[str] = None,
    ) -> Any:
        body: dict[str, Any] = {}
        if queue:
            body["queue"] = list(queue)
        if batch_id:
            body["batchId"] = batch_id
        req = self._request(f"/rotor/session/{session_id}/tracks").add_headers(JSON_CONTENT_TYPE)
        if body:
            req.set_body_data(body)
        return await self._post(req)

    # --- queues ------------------------------------------------------

    async def get_queues(self) -> Any:
        return await self._get(self._request("/queues").add_headers(DEVICE_HEADER))

    async def get_queue(self, queue_id: str) -> Any:
        return await self._get(self._request(f"/queues/{queue_id}"))

    # --- lifecycle ---------------------------------------------------

    def clear_cache(self) -> None:
        self._http.clear_cache()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> YMApi:
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.aclose()
