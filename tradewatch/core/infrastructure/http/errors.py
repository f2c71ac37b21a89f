"""Transport error taxonomy and classification."""

from enum import Enum
from typing import Any

import httpx

from tradewatch.core.domain.exceptions import TradewatchError


class ApiErrorType(str, Enum):
    """出站请求错误类别。"""

    NETWORK = "NETWORK_ERROR"
    AUTHENTICATION = "AUTHENTICATION_ERROR"
    RATE_LIMIT = "RATE_LIMIT_ERROR"
    NOT_FOUND = "NOT_FOUND_ERROR"
    VALIDATION = "VALIDATION_ERROR"
    SERVER = "SERVER_ERROR"
    UNKNOWN = "UNKNOWN_ERROR"


RETRYABLE_ERROR_TYPES: frozenset[ApiErrorType] = frozenset(
    {
        ApiErrorType.NETWORK,
        ApiErrorType.AUTHENTICATION,
        ApiErrorType.RATE_LIMIT,
        ApiErrorType.SERVER,
    }
)


class ApiError(TradewatchError):
    """Classified outbound request failure."""

    error_code = "API_ERROR"

    def __init__(
        self,
        error_type: ApiErrorType,
        status_code: int | None = None,
        response: Any = None,
        retryable: bool | None = None,
        message: str | None = None,
    ):
        self.error_type = error_type
        self.status_code = status_code
        self.response = response
        self.retryable = (
            error_type in RETRYABLE_ERROR_TYPES if retryable is None else retryable
        )
        if message is None:
            message = f"API Error: {error_type.value}"
            if status_code is not None:
                message = f"{message} (HTTP {status_code})"
        super().__init__(message)


def classify_status(status_code: int) -> ApiErrorType:
    """将 HTTP 状态码映射为错误类别。"""
    if status_code in (401, 403):
        return ApiErrorType.AUTHENTICATION
    if status_code == 404:
        return ApiErrorType.NOT_FOUND
    if status_code == 429:
        return ApiErrorType.RATE_LIMIT
    if status_code == 422:
        return ApiErrorType.VALIDATION
    if status_code >= 500:
        return ApiErrorType.SERVER
    return ApiErrorType.UNKNOWN


def classify_error(exc: BaseException) -> ApiError:
    """将任意异常归类为 ApiError。

    - HTTP 错误响应按状态码分类
    - 无响应的传输层错误（连接、超时等）归为 Network
    - 其余归为 Unknown（不可重试）
    """
    if isinstance(exc, ApiError):
        return exc

    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code
        return ApiError(
            classify_status(status_code),
            status_code=status_code,
            response=_response_payload(exc.response),
        )

    if isinstance(exc, httpx.TransportError):
        return ApiError(
            ApiErrorType.NETWORK,
            response=str(exc) or type(exc).__name__,
        )

    return ApiError(ApiErrorType.UNKNOWN, response=str(exc))


def _response_payload(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
