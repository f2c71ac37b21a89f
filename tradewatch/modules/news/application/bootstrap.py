"""News aggregator wiring."""

import httpx

from tradewatch.core.config import Settings
from tradewatch.core.config import settings as default_settings
from tradewatch.core.infrastructure.cache import CacheService
from tradewatch.modules.news.application.aggregator import NewsAggregatorService
from tradewatch.modules.news.infrastructure.adapters.factory import build_news_sources


def build_aggregator(
    config: Settings | None = None,
    *,
    cache: CacheService | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> NewsAggregatorService:
    """按配置组装缓存与全部来源。"""
    config = config or default_settings
    cache = cache or CacheService(
        host=config.REDIS_HOST,
        port=config.REDIS_PORT,
        password=config.REDIS_PASSWORD,
        default_ttl=config.CACHE_DEFAULT_TTL,
        db=config.REDIS_DB,
        ttl_overrides=config.CACHE_TTL_OVERRIDES,
        compression_threshold=config.CACHE_COMPRESSION_THRESHOLD,
    )
    return NewsAggregatorService(cache, build_news_sources(config, transport=transport))
