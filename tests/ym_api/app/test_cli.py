from __future__ import annotations

import pytest

from ym_api.app import cli
from ym_api.app.cli import app
from ym_api.core.errors import AuthRequired


def test_cli_help_shows_commands(runner):
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("token", "track", "search", "download-url"):
        assert command in result.output


def test_download_url_help_lists_codecs(runner):
    result = runner.invoke(app, ["download-url", "--help"])
    assert result.exit_code == 0
    assert "--codec" in result.output
    assert "--legacy" in result.output


class FailingClient:
    def __init__(self) -> None:
        self.closed = False
        self.api = self

    async def init(self, **kwargs):
        raise AuthRequired("username && password || access_token && uid must be set")

    async def aclose(self) -> None:
        self.closed = True


class FakeContainer:
    client: FailingClient

    def wrapped(self):
        return FakeContainer.client


@pytest.fixture
def failing_client(monkeypatch):
    FakeContainer.client = FailingClient()
    monkeypatch.setattr(cli, "Container", FakeContainer)
    return FakeContainer.client


def test_api_error_exits_with_code_one(runner, failing_client):
    result = runner.invoke(app, ["track", "12345"])
    assert result.exit_code == 1
    assert "AUTH_REQUIRED" in result.output
    assert failing_client.closed


def test_id_or_url():
    assert cli._id_or_url("42") == 42
    assert cli._id_or_url("https://music.yandex.ru/track/42") == "https://music.yandex.ru/track/42"
