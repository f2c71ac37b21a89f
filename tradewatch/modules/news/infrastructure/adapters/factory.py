"""Source adapter factory.

根据配置为每个上游构造独立的 TransportClient 与适配器。
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx
from loguru import logger

from tradewatch.core.config import Settings
from tradewatch.core.config import settings as default_settings
from tradewatch.core.infrastructure.http import (
    AuthConfig,
    AuthType,
    ClientConfig,
    RateLimitConfig,
    RetryConfig,
    TransportClient,
)
from tradewatch.modules.news.domain.entities import SourceDescriptor
from tradewatch.modules.news.infrastructure.adapters.base import BaseNewsAdapter
from tradewatch.modules.news.infrastructure.adapters.bloomberg import (
    SECRET_HEADER,
    BloombergAdapter,
)
from tradewatch.modules.news.infrastructure.adapters.reuters import ReutersAdapter
from tradewatch.modules.news.infrastructure.adapters.wto import WtoAdapter


@dataclass(frozen=True)
class _SourceSettings:
    adapter_class: type[BaseNewsAdapter]
    enabled: bool
    base_url: str
    api_key: str | None
    requests_per_second: float
    weight: float
    extra_headers: dict[str, str]


def _source_settings(config: Settings) -> list[_SourceSettings]:
    bloomberg_headers = (
        {SECRET_HEADER: config.BLOOMBERG_SECRET_KEY} if config.BLOOMBERG_SECRET_KEY else {}
    )
    return [
        _SourceSettings(
            adapter_class=ReutersAdapter,
            enabled=config.REUTERS_ENABLED,
            base_url=config.REUTERS_BASE_URL,
            api_key=config.REUTERS_API_KEY,
            requests_per_second=config.REUTERS_REQUESTS_PER_SECOND,
            weight=config.REUTERS_WEIGHT,
            extra_headers={},
        ),
        _SourceSettings(
            adapter_class=WtoAdapter,
            enabled=config.WTO_ENABLED,
            base_url=config.WTO_BASE_URL,
            api_key=config.WTO_API_KEY,
            requests_per_second=config.WTO_REQUESTS_PER_SECOND,
            weight=config.WTO_WEIGHT,
            extra_headers={},
        ),
        _SourceSettings(
            adapter_class=BloombergAdapter,
            enabled=config.BLOOMBERG_ENABLED,
            base_url=config.BLOOMBERG_BASE_URL,
            api_key=config.BLOOMBERG_API_KEY,
            requests_per_second=config.BLOOMBERG_REQUESTS_PER_SECOND,
            weight=config.BLOOMBERG_WEIGHT,
            extra_headers=bloomberg_headers,
        ),
    ]


def build_client_config(
    config: Settings,
    base_url: str,
    api_key: str | None,
    requests_per_second: float,
    headers: dict[str, str] | None = None,
) -> ClientConfig:
    """由全局配置构造单个来源的 ClientConfig。"""
    auth = (
        AuthConfig(type=AuthType.API_KEY, api_key=api_key)
        if api_key
        else AuthConfig(type=AuthType.NONE)
    )
    return ClientConfig(
        base_url=base_url,
        headers=headers or {},
        auth=auth,
        rate_limit=RateLimitConfig(requests_per_second=requests_per_second),
        retry=RetryConfig(
            max_retries=config.HTTP_MAX_RETRIES,
            initial_delay_sec=config.HTTP_RETRY_INITIAL_DELAY_SEC,
            max_delay_sec=config.HTTP_RETRY_MAX_DELAY_SEC,
            backoff_factor=config.HTTP_RETRY_BACKOFF_FACTOR,
        ),
        timeout_sec=config.HTTP_TIMEOUT_SEC,
    )


def build_news_sources(
    config: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[SourceDescriptor]:
    """为全部已知来源创建 SourceDescriptor。

    禁用的来源同样会被创建（enabled=False），以便运行时重新启用。

    Args:
        config: 配置，默认使用全局 settings
        transport: 可选的 httpx 传输层（测试时注入）
    """
    config = config or default_settings
    descriptors: list[SourceDescriptor] = []
    for source in _source_settings(config):
        if source.enabled and not source.api_key and source.adapter_class is not WtoAdapter:
            logger.warning(
                f"No API key configured for {source.adapter_class.source_id}, "
                "requests will be sent unauthenticated"
            )
        client = TransportClient(
            build_client_config(
                config,
                base_url=source.base_url,
                api_key=source.api_key,
                requests_per_second=source.requests_per_second,
                headers=source.extra_headers,
            ),
            transport=transport,
        )
        descriptors.append(
            SourceDescriptor(
                adapter=source.adapter_class(client),
                weight=source.weight,
                enabled=source.enabled,
            )
        )
    return descriptors
