"""Redis 客户端封装。"""

from tradewatch.core.infrastructure.redis.client import RedisClient
from tradewatch.core.infrastructure.redis.keys import NewsCacheKeys, RedisKeys

__all__ = [
    "NewsCacheKeys",
    "RedisClient",
    "RedisKeys",
]
