from __future__ import annotations

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_USER_AGENT = "YandexMusicDesktopAppWindows/5.13.2"


class AppConfig(BaseSettings):
    """Client configuration with automatic environment variable loading.

    All settings can be overridden via environment variables with the YM_API_ prefix.
    For example:
        - YM_API_ACCESS_TOKEN=y0_xxx
        - YM_API_UID=123456
        - YM_API_MAX_CONCURRENT=10
        - YM_API_CACHE_TTL_SECONDS=30

    Alternatively, settings can be provided programmatically when creating the Container:
        container = Container()
        container.config.from_pydantic(AppConfig(access_token="y0_xxx", uid=1))
    """

    model_config = SettingsConfigDict(
        env_prefix="YM_API_",
        case_sensitive=False,
        extra="forbid",
    )

    access_token: Optional[str] = Field(default=None, description="OAuth access token for token-based init")
    uid: Optional[int] = Field(default=None, description="Numeric user id paired with access_token")
    username: Optional[str] = Field(default=None, description="Login for credential-based init")
    password: Optional[str] = Field(default=None, description="Password for credential-based init")

    oauth_client_id: str = Field(
        default="23cabbbdc6cd418abb4b39c32c41195d",
        description="OAuth client id sent with the password grant",
    )
    oauth_client_secret: str = Field(
        default="53bc75238f0c4d08a118e51fe9203300",
        description="OAuth client secret sent with the password grant",
    )

    user_agent: str = Field(default=DEFAULT_USER_AGENT, description="User-Agent and X-Yandex-Music-Client value")
    timeout_seconds: float = Field(default=10.0, gt=0, description="Connect/read/write/pool timeout budget each")

    max_retries: int = Field(default=2, ge=0, description="Retries after the first attempt on transient failures")
    retry_base_delay_seconds: float = Field(default=1.0, ge=0)
    retry_max_delay_seconds: float = Field(default=30.0, ge=0)
    retry_jitter: bool = Field(default=True, description="Scale each backoff delay by a random factor in [0.75, 1.25]")

    max_concurrent: int = Field(default=20, ge=1, description="Maximum requests running at once per client")
    rate_limit_max_requests: int = Field(default=100, ge=1)
    rate_limit_window_seconds: float = Field(default=60.0, gt=0)

    cache_ttl_seconds: float = Field(default=60.0, ge=0, description="GET response cache TTL; 0 disables caching")
    cache_max_size: int = Field(default=500, ge=1)

    signature_key: str = Field(
        default="kzqU4XhfCaY6B6JTHODeq5",
        description="HMAC-SHA256 key for download-info signatures; the server matches it exactly",
    )
    direct_link_salt: str = Field(
        default="XGRlBW9FXlekgbPrRHuSiA",
        description="MD5 salt for direct download links; the server matches it exactly",
    )
    stream_key: str = Field(
        default="5869b72821cbd9f76afa0a58f7a94083",
        description="Hex AES-128 key for encrypted (encraw) streams",
    )
