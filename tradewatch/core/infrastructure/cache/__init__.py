"""缓存层。"""

from tradewatch.core.infrastructure.cache.service import (
    DEFAULT_TYPE_TTLS,
    CacheEntityType,
    CacheError,
    CacheService,
    CacheStats,
)

__all__ = [
    "DEFAULT_TYPE_TTLS",
    "CacheEntityType",
    "CacheError",
    "CacheService",
    "CacheStats",
]
