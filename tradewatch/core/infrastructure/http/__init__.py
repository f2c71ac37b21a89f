"""出站 HTTP 客户端封装。"""

from tradewatch.core.infrastructure.http.client import TransportClient
from tradewatch.core.infrastructure.http.config import (
    AuthConfig,
    AuthType,
    ClientConfig,
    OAuth2Config,
    RateLimitConfig,
    RetryConfig,
)
from tradewatch.core.infrastructure.http.errors import (
    ApiError,
    ApiErrorType,
    classify_error,
)
from tradewatch.core.infrastructure.http.rate_limiter import TokenBucket
from tradewatch.core.infrastructure.http.transforms import (
    OutboundRequest,
    header_injector,
    hmac_signer,
)

__all__ = [
    "ApiError",
    "ApiErrorType",
    "AuthConfig",
    "AuthType",
    "ClientConfig",
    "OAuth2Config",
    "OutboundRequest",
    "RateLimitConfig",
    "RetryConfig",
    "TokenBucket",
    "TransportClient",
    "classify_error",
    "header_injector",
    "hmac_signer",
]
