from __future__ import annotations

import asyncio
import gc
import json
from urllib.parse import parse_qs

import httpx
import pytest

from conftest import gzip_json_response, json_response, xml_response
from ym_api.core.domain.enums import BodyKind
from ym_api.core.errors import DecodeError, HttpError, JsonParseError, NetworkError
from ym_api.infra.cache_memory import InMemoryCache
from ym_api.infra.http_client import ACCEPT_ENCODING, HttpClient, cache_key
from ym_api.infra.preprocess import BrowserImpersonation
from ym_api.infra.request import api_request
from ym_api.infra.retry import RetryPolicy


def _run(coro):
    return asyncio.run(coro)


def test_get_parses_json_and_unwraps_envelope(make_client):
    client = make_client(lambda request: json_response({"id": 42}))
    body = _run(client.get(api_request().set_path("/tracks/42")))
    assert body.kind is BodyKind.JSON
    assert body.value == {"id": 42}


def test_gzip_body_is_decompressed_before_parsing(make_client):
    client = make_client(lambda request: gzip_json_response([{"id": 1}, {"id": 2}]))
    body = _run(client.get(api_request().set_path("/tracks")))
    assert body.value == [{"id": 1}, {"id": 2}]


def test_accept_encoding_and_default_headers_are_sent(make_client):
    seen: list[httpx.Headers] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers)
        return json_response({})

    client = make_client(handler, base_headers={"User-Agent": "ua-test"})
    req = api_request().set_path("/feed").add_headers({"Authorization": "OAuth t", "Accept-Encoding": "identity"})
    _run(client.get(req))

    headers = seen[0]
    assert headers["accept-encoding"] == ACCEPT_ENCODING
    assert headers["authorization"] == "OAuth t"
    assert headers["user-agent"] == "ua-test"
    assert headers["x-yandex-music-client"]


def test_concurrent_identical_gets_share_one_network_call(make_client):
    calls = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return json_response({"n": calls})

    client = make_client(handler)

    async def scenario():
        req = lambda: api_request().set_path("/genres")  # noqa: E731
        results = await asyncio.gather(*(client.get(req(), use_cache=False) for _ in range(5)))
        return results

    results = _run(scenario())
    assert calls == 1
    assert all(r.value == {"n": 1} for r in results)
    assert client.inflight_count() == 0


def test_cached_get_is_served_without_network_until_ttl(make_client, clock):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return json_response({"n": calls})

    client = make_client(handler, cache=InMemoryCache(ttl_seconds=60.0, clock=clock))

    async def scenario():
        first = await client.get(api_request().set_path("/genres"))
        clock.advance(30.0)
        second = await client.get(api_request().set_path("/genres"))
        clock.advance(30.0)
        third = await client.get(api_request().set_path("/genres"))
        return first, second, third

    first, second, third = _run(scenario())
    assert first.value == second.value == {"n": 1}
    assert third.value == {"n": 2}
    assert calls == 2


def test_post_is_never_cached_or_deduplicated(make_client, clock):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return json_response("ok")

    client = make_client(handler, cache=InMemoryCache(ttl_seconds=60.0, clock=clock))

    async def scenario():
        req = lambda: api_request().set_path("/albums").set_body_data({"albumIds": "1,2"})  # noqa: E731
        await asyncio.gather(client.post(req()), client.post(req()))
        await client.post(req())

    _run(scenario())
    assert calls == 3


def test_retries_503_then_succeeds(make_client, clock):
    statuses = iter([503, 503, 200])

    def handler(request: httpx.Request) -> httpx.Response:
        status = next(statuses)
        return json_response({"ok": status == 200}, status_code=status)

    client = make_client(handler)
    body = _run(client.get(api_request().set_path("/feed")))
    assert body.value == {"ok": True}
    assert clock.sleeps == [1.0, 2.0]


def test_retries_exhausted_raise_http_error(make_client):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(503, text="busy")

    client = make_client(handler)
    with pytest.raises(HttpError) as exc:
        _run(client.get(api_request().set_path("/feed")))
    assert calls == 3
    assert exc.value.status_code == 503
    assert exc.value.reason == "Service Unavailable"
    assert exc.value.body == "busy"


def test_non_retryable_status_raises_immediately(make_client):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(404, text="missing")

    client = make_client(handler)
    with pytest.raises(HttpError) as exc:
        _run(client.get(api_request().set_path("/tracks/0")))
    assert calls == 1
    assert exc.value.code == "HTTP_ERROR"


def test_transport_errors_become_network_error(make_client):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        raise httpx.ConnectError("refused", request=request)

    client = make_client(handler)
    with pytest.raises(NetworkError):
        _run(client.get(api_request().set_path("/feed")))
    assert calls == 3
    assert client.inflight_count() == 0


def test_malformed_json_raises_json_parse_error(make_client):
    client = make_client(lambda request: httpx.Response(200, headers={"Content-Type": "application/json"}, text="{oops"))
    with pytest.raises(JsonParseError):
        _run(client.get(api_request().set_path("/feed")))


def test_xml_response_is_parsed(make_client):
    client = make_client(lambda request: xml_response("<download-info><host>h</host></download-info>"))
    body = _run(client.get(api_request().set_path("/info")))
    assert body.kind is BodyKind.XML
    assert body.value == {"download-info": {"host": "h"}}


def test_form_body_is_default_and_json_content_type_switches(make_client):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return json_response("ok")

    client = make_client(handler)

    async def scenario():
        await client.post(api_request().set_path("/albums").set_body_data({"albumIds": "1,2"}))
        await client.post(
            api_request()
            .set_path("/rotor/session/new")
            .add_headers({"content-type": "application/json"})
            .set_body_data({"seeds": ["user:onyourwave"], "includeTracksInResponse": True})
        )

    _run(scenario())
    form, js = seen
    assert form.headers["content-type"] == "application/x-www-form-urlencoded"
    assert parse_qs(form.content.decode()) == {"albumIds": ["1,2"]}
    assert json.loads(js.content) == {"seeds": ["user:onyourwave"], "includeTracksInResponse": True}


def test_cookies_are_persisted_and_replayed(make_client):
    seen_cookies: list[str | None] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_cookies.append(request.headers.get("cookie"))
        return json_response({}, headers={"Set-Cookie": "yandexuid=123; Path=/"})

    client = make_client(handler)

    async def scenario():
        await client.get(api_request().set_path("/one"), use_cache=False)
        await client.get(api_request().set_path("/two"), use_cache=False)

    _run(scenario())
    assert seen_cookies[0] is None
    assert seen_cookies[1] == "yandexuid=123"
    assert client.cookies.get("yandexuid") == "123"


def test_captcha_403_gets_one_extra_attempt(make_client, clock):
    statuses = iter([403, 200])
    agents: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        agents.append(request.headers["user-agent"])
        if next(statuses) == 403:
            return httpx.Response(403, text="<html>Please solve the SmartCaptcha</html>")
        return json_response({"ok": True})

    preprocessor = BrowserImpersonation(user_agents=["ua-1"], languages=["ru"], max_delay_seconds=0)
    client = make_client(handler, preprocessor=preprocessor)
    body = _run(client.get(api_request().set_path("/feed")))
    assert body.value == {"ok": True}
    assert agents == ["ua-1", "ua-1"]


def test_cache_key_format():
    assert cache_key("GET", "https://h/x", None) == "GET:https://h/x:"
    assert cache_key("POST", "https://h/x", "a=1") == "POST:https://h/x:a=1"


def test_async_context_manager_closes_client():
    async def scenario():
        async with HttpClient(transport=httpx.MockTransport(lambda r: json_response({}))) as client:
            await client.get(api_request().set_path("/x"))
        return client

    client = _run(scenario())
    assert client._client.is_closed


def test_body_not_matching_content_encoding_raises_decode_error(make_client):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            headers={"Content-Type": "application/json", "Content-Encoding": "gzip"},
            stream=httpx.ByteStream(b"not gzip at all"),
        )

    client = make_client(handler)
    with pytest.raises(DecodeError) as exc:
        _run(client.get(api_request().set_path("/feed")))
    assert exc.value.code == "DECODE_ERROR"
    assert client.inflight_count() == 0


def test_cancelled_caller_does_not_cancel_shared_get(make_client, clock):
    calls = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return json_response({"n": calls})

    cache = InMemoryCache(ttl_seconds=60.0, clock=clock)
    client = make_client(handler, cache=cache)

    async def scenario():
        first = asyncio.create_task(client.get(api_request().set_path("/g")))
        second = asyncio.create_task(client.get(api_request().set_path("/g")))
        await asyncio.sleep(0.005)
        first.cancel()
        body = await second
        with pytest.raises(asyncio.CancelledError):
            await first
        return body

    body = _run(scenario())
    assert calls == 1
    assert body.value == {"n": 1}
    assert len(cache) == 1
    assert client.inflight_count() == 0


def test_shared_failure_reaches_every_joiner(make_client):
    calls = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return httpx.Response(404, text="missing")

    client = make_client(handler)

    async def scenario():
        req = lambda: api_request().set_path("/tracks/0")  # noqa: E731
        return await asyncio.gather(*(client.get(req(), use_cache=False) for _ in range(4)), return_exceptions=True)

    results = _run(scenario())
    assert calls == 1
    assert len(results) == 4
    assert all(isinstance(r, HttpError) and r.status_code == 404 for r in results)
    assert client.inflight_count() == 0


def test_failure_of_abandoned_shared_get_is_not_reported_as_unretrieved(make_client):
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0.01)
        return httpx.Response(500, text="boom")

    client = make_client(handler, retry_policy=RetryPolicy(max_retries=0))

    async def scenario():
        loop = asyncio.get_running_loop()
        reported: list[dict] = []
        loop.set_exception_handler(lambda _loop, context: reported.append(context))

        caller = asyncio.create_task(client.get(api_request().set_path("/feed"), use_cache=False))
        await asyncio.sleep(0.005)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller
        del caller
        while client.inflight_count():
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.01)
        gc.collect()
        return reported

    assert _run(scenario()) == []
