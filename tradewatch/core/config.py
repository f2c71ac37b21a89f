"""Application configuration."""

import json
from typing import Annotated, Any, Literal

from pydantic import BeforeValidator, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_ttl_overrides(v: Any) -> dict[str, int]:
    """解析实体类型 TTL 覆盖配置。

    支持 JSON 对象字符串（``{"product": 600}``）或 ``product=600,category=60``。
    """
    if v is None or v == "":
        return {}
    if isinstance(v, dict):
        return {str(k): int(val) for k, val in v.items()}
    if isinstance(v, str):
        text = v.strip()
        if text.startswith("{"):
            return {str(k): int(val) for k, val in json.loads(text).items()}
        overrides: dict[str, int] = {}
        for pair in text.split(","):
            if not pair.strip():
                continue
            name, _, seconds = pair.partition("=")
            if not seconds:
                raise ValueError(f"Invalid TTL override: {pair!r}")
            overrides[name.strip()] = int(seconds.strip())
        return overrides
    raise ValueError(v)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    # Application
    PROJECT_NAME: str = "tradewatch"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    LOG_LEVEL: str = "INFO"

    # Redis
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str | None = None
    REDIS_SOCKET_TIMEOUT_SEC: float = 10.0
    REDIS_CONNECT_TIMEOUT_SEC: float = 10.0

    # Cache policy
    CACHE_DEFAULT_TTL: int = 3600  # 1 hour
    CACHE_TTL_OVERRIDES: Annotated[
        dict[str, int] | str, BeforeValidator(parse_ttl_overrides)
    ] = {}
    CACHE_COMPRESSION_THRESHOLD: int = 1024  # bytes

    # Outbound HTTP defaults
    HTTP_TIMEOUT_SEC: float = 15.0
    HTTP_USER_AGENT: str = "tradewatch/0.1 (+https://tradewatch.example)"
    HTTP_MAX_RETRIES: int = 3
    HTTP_RETRY_INITIAL_DELAY_SEC: float = 1.0
    HTTP_RETRY_MAX_DELAY_SEC: float = 30.0
    HTTP_RETRY_BACKOFF_FACTOR: float = 2.0

    # Reuters
    REUTERS_ENABLED: bool = True
    REUTERS_BASE_URL: str = "https://api.reuters.com"
    REUTERS_API_KEY: str | None = None
    REUTERS_REQUESTS_PER_SECOND: float = 5.0
    REUTERS_WEIGHT: float = 0.4

    # WTO
    WTO_ENABLED: bool = True
    WTO_BASE_URL: str = "https://api.wto.org"
    WTO_API_KEY: str | None = None
    WTO_REQUESTS_PER_SECOND: float = 2.0
    WTO_WEIGHT: float = 0.3

    # Bloomberg
    BLOOMBERG_ENABLED: bool = True
    BLOOMBERG_BASE_URL: str = "https://api.bloomberg.com"
    BLOOMBERG_API_KEY: str | None = None
    BLOOMBERG_SECRET_KEY: str | None = None
    BLOOMBERG_REQUESTS_PER_SECOND: float = 5.0
    BLOOMBERG_WEIGHT: float = 0.3

    # Aggregator
    AGGREGATOR_DEFAULT_LIMIT: int = 20
    TRENDING_WINDOW_DAYS: int = 7
    TRENDING_SAMPLE_SIZE: int = 100

    @computed_field
    @property
    def redis_url(self) -> str:
        """Redis 连接 URL（不含密码，仅用于日志/诊断）。"""
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


settings = Settings()
