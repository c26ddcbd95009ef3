from __future__ import annotations

API_BASE_URL = "https://api.music.yandex.net"
OAUTH_BASE_URL = "https://oauth.yandex.ru"
CLCK_BASE_URL = "https://clck.ru"
WEB_BASE_URL = "https://music.yandex.ru"


def get_track_share_url(album_id: int | str, track_id: int | str) -> str:
    return f"{WEB_BASE_URL}/album/{album_id}/track/{track_id}"


def get_direct_link_url(host: str, sign: str, ts: str, path: str) -> str:
    return f"https://{host}/get-mp3/{sign}/{ts}{path}"
