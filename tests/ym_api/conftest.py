"""tests/ym_api/conftest.py

Common fixtures for the ym_api test suite.
"""

from __future__ import annotations

import asyncio
import gzip
import json
from typing import Any, Callable

import httpx
import pytest
from typer.testing import CliRunner

from ym_api.infra.http_client import HttpClient
from ym_api.infra.retry import RetryPolicy


class FakeClock:
    """Clock whose time only moves when something sleeps on it."""

    def __init__(self, wall_start: float = 1_700_000_000.0) -> None:
        self.now = 0.0
        self.wall_start = wall_start
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def time(self) -> float:
        return self.wall_start + self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        target = self.now + max(seconds, 0)
        # Let other ready tasks run at the current time before jumping ahead
        await asyncio.sleep(0)
        self.now = max(self.now, target)


def json_response(obj: Any, status_code: int = 200, headers: dict[str, str] | None = None) -> httpx.Response:
    """API-style JSON response wrapped in the `{invocationInfo, result}` envelope."""
    return httpx.Response(status_code, json={"invocationInfo": {"req-id": "test"}, "result": obj}, headers=headers)


def gzip_json_response(obj: Any) -> httpx.Response:
    body = gzip.compress(json.dumps({"invocationInfo": {}, "result": obj}).encode("utf-8"))
    return httpx.Response(
        200,
        headers={"Content-Type": "application/json; charset=utf-8", "Content-Encoding": "gzip"},
        stream=httpx.ByteStream(body),
    )


def xml_response(text: str) -> httpx.Response:
    return httpx.Response(200, headers={"Content-Type": "text/xml"}, content=text.encode("utf-8"))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_client(clock: FakeClock) -> Callable[..., HttpClient]:
    """Build an HttpClient whose network is the given MockTransport handler."""

    def factory(handler: Callable[[httpx.Request], Any], **kwargs: Any) -> HttpClient:
        kwargs.setdefault("retry_policy", RetryPolicy(max_retries=2, jitter=False))
        kwargs.setdefault("clock", clock)
        return HttpClient(transport=httpx.MockTransport(handler), **kwargs)

    return factory


@pytest.fixture(scope="session")
def runner() -> CliRunner:
    """Provides a Typer CliRunner instance."""
    return CliRunner()
