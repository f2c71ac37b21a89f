"""出站 HTTP 客户端。

提供统一的出站请求能力，支持：
- 令牌桶限流（令牌不足时挂起等待，而不是失败）
- 认证注入（api_key / basic / oauth2）
- 请求/响应变换管道
- 错误分类与指数退避重试
"""

from __future__ import annotations

import asyncio
import base64
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import httpx
from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from tradewatch.core.config import settings
from tradewatch.core.domain.exceptions import ConfigurationError
from tradewatch.core.infrastructure.http.config import AuthType, ClientConfig, RetryConfig
from tradewatch.core.infrastructure.http.errors import ApiError, classify_error
from tradewatch.core.infrastructure.http.oauth import OAuth2TokenProvider
from tradewatch.core.infrastructure.http.rate_limiter import TokenBucket
from tradewatch.core.infrastructure.http.transforms import (
    OutboundRequest,
    RequestTransform,
    ResponseTransform,
    run_pipeline,
)
from tradewatch.core.infrastructure.logging import BusinessEvents

_NO_RETRY = RetryConfig(max_retries=0)


class TransportClient:
    """Rate-limited, retrying HTTP client bound to one upstream."""

    def __init__(
        self,
        config: ClientConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        token_provider: OAuth2TokenProvider | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """初始化客户端。

        Args:
            config: 客户端配置（构造后不可变）
            transport: 可选的 httpx 传输层（测试时注入 MockTransport）
            token_provider: OAuth2 令牌提供者，未指定时按配置自动创建
            sleep: 重试退避使用的 sleep 函数
        """
        self.config = config
        self._transport = transport
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None
        self._request_transforms: list[RequestTransform] = []
        self._response_transforms: list[ResponseTransform] = []

        self.rate_limiter: TokenBucket | None = None
        if config.rate_limit is not None:
            self.rate_limiter = TokenBucket(
                rate=config.rate_limit.requests_per_second,
                capacity=config.rate_limit.capacity,
            )

        if token_provider is None and config.auth.type == AuthType.OAUTH2:
            if config.auth.oauth2 is None:
                raise ConfigurationError("oauth2 auth requires oauth2 config")
            token_provider = OAuth2TokenProvider(
                config.auth.oauth2,
                timeout_sec=config.timeout_sec,
                transport=transport,
            )
        self._token_provider = token_provider

    @property
    def client(self) -> httpx.AsyncClient:
        """获取 httpx 客户端实例（延迟初始化）。"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout_sec,
                transport=self._transport,
                follow_redirects=False,
            )
        return self._client

    async def aclose(self) -> None:
        """关闭底层连接。"""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> TransportClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ============ 变换管道 ============

    def add_request_transform(self, transform: RequestTransform) -> None:
        """注册请求变换（按注册顺序执行）。"""
        self._request_transforms.append(transform)

    def add_response_transform(self, transform: ResponseTransform) -> None:
        """注册响应变换（按注册顺序执行）。"""
        self._response_transforms.append(transform)

    # ============ 请求 ============

    async def get(self, path: str, params: Mapping[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(
        self,
        path: str,
        body: Any = None,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        return await self.request("POST", path, params=params, body=body)

    async def request(
        self,
        method: str,
        path: str,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """发送请求并返回解码后的响应体。

        Raises:
            ApiError: 不可重试错误立即抛出；可重试错误在重试预算耗尽后抛出
        """
        outbound = OutboundRequest(
            method=method.upper(),
            path=path,
            params={k: v for k, v in (params or {}).items() if v is not None},
            headers={**self._default_headers(), **(headers or {})},
            body=body,
        )
        retry_config = self.config.retry or _NO_RETRY
        prepared: OutboundRequest | None = None
        attempts = 0

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(retry_config.max_retries + 1),
                wait=lambda state: retry_config.delay_for(state.attempt_number),
                retry=retry_if_exception(self._should_retry),
                before_sleep=lambda state: self._log_retry(path, state),
                sleep=self._sleep,
                reraise=True,
            ):
                with attempt:
                    attempts += 1
                    try:
                        if self.rate_limiter is not None:
                            await self.rate_limiter.acquire()
                        if prepared is None:
                            prepared = await self._prepare(outbound)
                        response = await self._send(prepared)
                        return self._decode(response)
                    except ApiError:
                        raise
                    except Exception as exc:
                        raise classify_error(exc) from exc
        except ApiError as exc:
            logger.warning(
                f"Request {outbound.method} {self.config.base_url}{path} failed "
                f"after {attempts} attempt(s): {exc.message}"
            )
            BusinessEvents.request_failed(
                base_url=self.config.base_url,
                path=path,
                error_type=exc.error_type.value,
                status_code=exc.status_code,
                attempts=attempts,
            )
            raise

        raise AssertionError("retry loop exited without a result")

    def _default_headers(self) -> dict[str, str]:
        return {
            "User-Agent": settings.HTTP_USER_AGENT,
            "Accept": "application/json",
            **self.config.headers,
        }

    async def _prepare(self, request: OutboundRequest) -> OutboundRequest:
        """注入认证信息后执行请求变换管道。"""
        request = request.with_headers(await self._auth_headers())
        return await run_pipeline(request, self._request_transforms)

    async def _auth_headers(self) -> dict[str, str]:
        auth = self.config.auth
        if auth.type == AuthType.API_KEY:
            return {"Authorization": f"Bearer {auth.api_key}"}
        if auth.type == AuthType.BASIC:
            raw = f"{auth.username}:{auth.password}".encode()
            return {"Authorization": f"Basic {base64.b64encode(raw).decode('ascii')}"}
        if auth.type == AuthType.OAUTH2 and self._token_provider is not None:
            token = await self._token_provider.get_token()
            return {"Authorization": f"Bearer {token}"}
        return {}

    async def _send(self, request: OutboundRequest) -> httpx.Response:
        kwargs: dict[str, Any] = {"params": request.params, "headers": request.headers}
        if request.body is not None:
            kwargs["json"] = request.body
        response = await self.client.request(request.method, request.path, **kwargs)
        response.raise_for_status()
        return await run_pipeline(response, self._response_transforms)

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        return response.json()

    # ============ 重试策略 ============

    def _should_retry(self, exc: BaseException) -> bool:
        if not isinstance(exc, ApiError) or not exc.retryable:
            return False
        retry_config = self.config.retry
        if retry_config is None:
            return False
        codes = retry_config.retryable_status_codes
        if codes is not None and exc.status_code is not None:
            return exc.status_code in codes
        return True

    def _log_retry(self, path: str, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        error_type = exc.error_type.value if isinstance(exc, ApiError) else "unknown"
        logger.info(
            f"Retrying request to {self.config.base_url}{path} "
            f"(attempt {retry_state.attempt_number} failed: {error_type}), "
            f"sleeping {delay:.2f}s"
        )
        BusinessEvents.request_retried(
            base_url=self.config.base_url,
            path=path,
            error_type=error_type,
            attempt=retry_state.attempt_number,
            delay_sec=delay,
        )
