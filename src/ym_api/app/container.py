from __future__ import annotations

import logging
from typing import Any

from dependency_injector import containers, providers

from ..config.settings import AppConfig
from ..core.ports.clock_port import SystemClock
from ..infra.cache_memory import InMemoryCache
from ..infra.http_client import HttpClient
from ..infra.link_shortener import ClckLinkShortener
from ..infra.rate_limiter import SlidingWindowRateLimiter
from ..infra.retry import RetryPolicy
from ..infra.server_clock import ServerClock
from ..infra.signature import SignatureEngine
from ..infra.stream_crypto import StreamDecryptor
from ..infra.url_extractor import UrlExtractor
from .api import YMApi
from .wrapped import WrappedYMApi

logger = logging.getLogger(__name__)


def client_headers(user_agent: str) -> dict[str, str]:
    return {"User-Agent": user_agent, "X-Yandex-Music-Client": user_agent}


def settings_from(values: dict[str, Any]) -> AppConfig:
    return AppConfig.model_validate(values)


class Container(containers.DeclarativeContainer):
    config = providers.Configuration(pydantic_settings=[AppConfig()])

    settings = providers.Callable(settings_from, config)

    clock = providers.Singleton(SystemClock)

    rate_limiter = providers.Singleton(
        SlidingWindowRateLimiter,
        max_requests=config.rate_limit_max_requests,
        window_seconds=config.rate_limit_window_seconds,
        clock=clock,
    )

    cache = providers.Singleton(
        InMemoryCache,
        ttl_seconds=config.cache_ttl_seconds,
        max_size=config.cache_max_size,
        clock=clock,
    )

    retry_policy = providers.Factory(
        RetryPolicy,
        max_retries=config.max_retries,
        base_delay_seconds=config.retry_base_delay_seconds,
        max_delay_seconds=config.retry_max_delay_seconds,
        jitter=config.retry_jitter,
    )

    # One transport per container: cookie jar, cache and limiter are per client
    http_client = providers.Singleton(
        HttpClient,
        base_headers=providers.Callable(client_headers, config.user_agent),
        timeout_seconds=config.timeout_seconds,
        retry_policy=retry_policy,
        max_concurrent=config.max_concurrent,
        rate_limiter=rate_limiter,
        cache=cache,
        clock=clock,
    )

    signature = providers.Singleton(
        SignatureEngine,
        signature_key=config.signature_key,
        direct_link_salt=config.direct_link_salt,
    )
    server_clock = providers.Singleton(ServerClock, http_client=http_client, clock=clock)
    link_shortener = providers.Singleton(ClckLinkShortener, http_client=http_client)
    url_extractor = providers.Singleton(UrlExtractor)
    stream_decryptor = providers.Singleton(StreamDecryptor, key_hex=config.stream_key)

    api = providers.Singleton(
        YMApi,
        http_client=http_client,
        config=settings,
        signature=signature,
        server_clock=server_clock,
        link_shortener=link_shortener,
        clock=clock,
    )
    wrapped = providers.Singleton(WrappedYMApi, api=api, url_extractor=url_extractor)


def create_client(**overrides: Any) -> WrappedYMApi:
    """Build a client from environment settings, optionally overriding some.

    Example:
        client = create_client(access_token="y0_xxx", uid=123, max_concurrent=5)
        await client.init()
        track = await client.get_track("https://music.yandex.ru/track/12345")
        await client.api.aclose()
    """
    container = Container()
    if overrides:
        container.config.from_pydantic(AppConfig(**overrides))
    logger.debug("Client container built (overrides: %s)", sorted(overrides))
    return container.wrapped()
