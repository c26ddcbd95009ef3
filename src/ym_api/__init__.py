"""ym_api package: app/core/infra.

Expose the library-friendly client at the package level.
"""

from .app.api import YMApi
from .app.container import Container, create_client
from .app.wrapped import WrappedYMApi
from .config.settings import AppConfig
from .core.domain.enums import DownloadTrackCodec, DownloadTrackQuality, SearchType, Transport
from .core.errors import YMApiError
from .infra.http_client import HttpClient

import logging

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

__all__ = [
    "YMApi",
    "WrappedYMApi",
    "HttpClient",
    "AppConfig",
    "Container",
    "create_client",
    "YMApiError",
    "DownloadTrackCodec",
    "DownloadTrackQuality",
    "SearchType",
    "Transport",
]
