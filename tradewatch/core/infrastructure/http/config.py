"""出站 HTTP 客户端配置模型。

ClientConfig 在构造后不可变，由单个 TransportClient 独占持有。
"""

from enum import StrEnum
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AuthType(StrEnum):
    """认证方式。"""

    NONE = "none"
    API_KEY = "api_key"
    BASIC = "basic"
    OAUTH2 = "oauth2"


class OAuth2Config(BaseModel):
    """OAuth2 client-credentials 配置。"""

    model_config = ConfigDict(frozen=True)

    client_id: str
    client_secret: str
    token_url: str
    scope: tuple[str, ...] = ()


class AuthConfig(BaseModel):
    """认证描述符。"""

    model_config = ConfigDict(frozen=True)

    type: AuthType = AuthType.NONE
    api_key: str | None = None
    username: str | None = None
    password: str | None = None
    oauth2: OAuth2Config | None = None

    @model_validator(mode="after")
    def _check_credentials(self) -> Self:
        if self.type == AuthType.API_KEY and not self.api_key:
            raise ValueError("api_key auth requires api_key")
        if self.type == AuthType.BASIC and (self.username is None or self.password is None):
            raise ValueError("basic auth requires username and password")
        if self.type == AuthType.OAUTH2 and self.oauth2 is None:
            raise ValueError("oauth2 auth requires oauth2 config")
        return self


class RateLimitConfig(BaseModel):
    """令牌桶限流配置。"""

    model_config = ConfigDict(frozen=True)

    requests_per_second: float = Field(..., gt=0)
    burst_size: int | None = Field(default=None, ge=1)

    @property
    def capacity(self) -> int:
        return self.burst_size or 1


class RetryConfig(BaseModel):
    """分类重试与指数退避配置。

    retryable_status_codes 为 None 时，所有可重试错误类别都会重试；
    否则 HTTP 状态码派生的错误仅在状态码位于列表中时重试。
    """

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=0)
    initial_delay_sec: float = Field(default=1.0, ge=0)
    max_delay_sec: float = Field(default=30.0, ge=0)
    backoff_factor: float = Field(default=2.0, gt=0)
    retryable_status_codes: frozenset[int] | None = None

    def delay_for(self, retry_count: int) -> float:
        """第 retry_count 次重试（从 1 开始）前的等待秒数。"""
        delay = self.initial_delay_sec * self.backoff_factor ** (retry_count - 1)
        return min(delay, self.max_delay_sec)


class ClientConfig(BaseModel):
    """TransportClient 配置。"""

    model_config = ConfigDict(frozen=True)

    base_url: str
    headers: dict[str, str] = Field(default_factory=dict)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    rate_limit: RateLimitConfig | None = None
    retry: RetryConfig | None = None
    timeout_sec: float = Field(default=15.0, gt=0)
