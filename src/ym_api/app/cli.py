from __future__ import annotations

"""ym_api.app.cli
=================
Command-line interface powered by Typer.

Usage examples
--------------
$ ym-api token --username me@yandex.ru --password ...   # exchange credentials for a token
$ ym-api track https://music.yandex.ru/track/12345      # show one track
$ ym-api search "daft punk" --type artist               # search the catalogue
$ ym-api download-url 12345 --codec flac --short        # signed download link
"""

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer
from typing_extensions import Annotated

from ..core.domain.enums import DownloadTrackCodec, DownloadTrackQuality, SearchType
from ..core.errors import YMApiError
from .container import Container
from .wrapped import WrappedYMApi

T = TypeVar("T")

app = typer.Typer(add_completion=False, help="Yandex Music API client")


class LogLevel(str, Enum):
    OFF = "OFF"
    CRITICAL = "CRITICAL"
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"
    DEBUG = "DEBUG"


class CodecChoice(str, Enum):
    BEST = "best"
    FLAC = "flac"
    AAC = "aac"
    MP3 = "mp3"


@app.callback()
def main(
    log_level: Annotated[
        Optional[LogLevel],
        typer.Option("--log-level", help="Set log level (OFF, CRITICAL, ERROR, WARNING, INFO, DEBUG). Default: OFF"),
    ] = None,
) -> None:
    """Configure package logging when requested."""
    if log_level in (None, LogLevel.OFF):
        return

    logger = logging.getLogger(__package__.split(".", 1)[0] if __package__ else "ym_api")
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s | %(name)s | %(message)s"))
        logger.addHandler(handler)
    logger.propagate = False
    logger.setLevel(log_level.value)


def _run(action: Callable[[WrappedYMApi], Awaitable[T]], init: bool = True) -> T:
    """Run one async action against a freshly wired client; YMApiError exits 1."""

    async def runner() -> T:
        client = Container().wrapped()
        try:
            if init:
                await client.init()
            return await action(client)
        finally:
            await client.api.aclose()

    try:
        return asyncio.run(runner())
    except YMApiError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)


def _echo_json(value: Any) -> None:
    typer.echo(json.dumps(value, ensure_ascii=False, indent=2, default=str))


@app.command(help="Exchange username/password for an OAuth token and print uid and token.")
def token(
    username: str = typer.Option(..., envvar="YM_API_USERNAME", help="Yandex login"),
    password: str = typer.Option(..., envvar="YM_API_PASSWORD", prompt=True, hide_input=True, help="Yandex password"),
) -> None:
    async def action(client: WrappedYMApi):
        return await client.api.init(username=username, password=password)

    data = _run(action, init=False)
    typer.echo(f"uid: {data.uid}")
    typer.echo(f"access_token: {data.access_token}")


@app.command(help="Show a track by numeric id or music.yandex.ru link.")
def track(id_or_url: str = typer.Argument(..., help="Track id or URL")) -> None:
    async def action(client: WrappedYMApi):
        return await client.get_track(_id_or_url(id_or_url))

    _echo_json(_run(action))


@app.command(help="Search the catalogue.")
def search(
    query: str = typer.Argument(..., help="Search text"),
    type: SearchType = typer.Option(SearchType.ALL, "--type", "-t", help="all, artist, track or album"),
    page: int = typer.Option(0, help="Result page (from 0)"),
) -> None:
    async def action(client: WrappedYMApi):
        return await client.api.search(query, type=type, page=page)

    _echo_json(_run(action))


@app.command("download-url", help="Print a download link for a track (FLAC, then AAC, then MP3 with --codec best).")
def download_url(
    id_or_url: str = typer.Argument(..., help="Track id or URL"),
    codec: CodecChoice = typer.Option(CodecChoice.BEST, "--codec", "-c"),
    quality: DownloadTrackQuality = typer.Option(DownloadTrackQuality.HIGH, "--quality", "-q"),
    short: bool = typer.Option(False, "--short", help="Shorten the link with clck.ru"),
    legacy: bool = typer.Option(False, "--legacy", help="Use the legacy download-info endpoint and sign the direct link"),
) -> None:
    track_ref = _id_or_url(id_or_url)

    async def action(client: WrappedYMApi) -> str:
        if legacy:
            wanted = DownloadTrackCodec.MP3 if codec is CodecChoice.BEST else DownloadTrackCodec(codec.value)
            info = await client.get_legacy_download_info(track_ref, wanted, quality)
            return await client.resolve_link(info, short)
        if codec is CodecChoice.BEST:
            return await client.get_best_download_url(track_ref, short, quality)
        info = await client.get_concrete_download_info(track_ref, DownloadTrackCodec(codec.value), quality)
        return await client.resolve_link(info, short)

    typer.echo(_run(action))


def _id_or_url(value: str) -> int | str:
    return int(value) if value.isdigit() else value


if __name__ == "__main__":
    app()
