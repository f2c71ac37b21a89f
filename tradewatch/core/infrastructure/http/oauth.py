"""OAuth2 client-credentials token acquisition."""

from __future__ import annotations

import asyncio
import time

import httpx
from loguru import logger

from tradewatch.core.infrastructure.http.config import OAuth2Config
from tradewatch.core.infrastructure.http.errors import ApiError, ApiErrorType

# 提前刷新的余量（秒），避免令牌在请求途中过期
_EXPIRY_SKEW_SEC = 30.0


class OAuth2TokenProvider:
    """Fetches and caches an access token for one client."""

    def __init__(
        self,
        config: OAuth2Config,
        *,
        timeout_sec: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self._timeout_sec = timeout_sec
        self._transport = transport
        self._token: str | None = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    async def get_token(self) -> str:
        """返回有效的 access token，必要时重新获取。"""
        async with self._lock:
            if self._token is not None and time.monotonic() < self._expires_at:
                return self._token

            data = {
                "grant_type": "client_credentials",
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
            }
            if self.config.scope:
                data["scope"] = " ".join(self.config.scope)

            try:
                async with httpx.AsyncClient(
                    timeout=self._timeout_sec,
                    transport=self._transport,
                ) as client:
                    response = await client.post(self.config.token_url, data=data)
                    response.raise_for_status()
                    payload = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning(f"OAuth2 token request failed: {exc}")
                raise ApiError(
                    ApiErrorType.AUTHENTICATION,
                    response=str(exc),
                    message=f"Failed to obtain OAuth2 token: {exc}",
                ) from exc

            token = payload.get("access_token") if isinstance(payload, dict) else None
            if not isinstance(token, str) or not token:
                raise ApiError(
                    ApiErrorType.AUTHENTICATION,
                    response=payload,
                    message="OAuth2 token response missing access_token",
                )

            expires_in = payload.get("expires_in", 3600)
            if not isinstance(expires_in, (int, float)):
                expires_in = 3600
            self._token = token
            self._expires_at = time.monotonic() + max(0.0, expires_in - _EXPIRY_SKEW_SEC)
            logger.info(f"Obtained OAuth2 token for client {self.config.client_id}")
            return token

