"""Redis Key 命名规范。

Redis 仅用于缓存层：
- 缓存条目：按实体类型划分前缀
- 压缩变体：与明文条目使用不同的物理 key
"""


class RedisKeys:
    """Redis Key 命名空间管理。"""

    # 缓存条目
    # cache:{entity_type}:{key}
    CACHE_PREFIX = "cache"

    # 压缩变体后缀
    # cache:{entity_type}:{key}:compressed
    COMPRESSED_SUFFIX = "compressed"

    @classmethod
    def cache_entry(cls, entity_type: str, key: str) -> str:
        """生成明文缓存条目 key。

        Args:
            entity_type: 实体类型（如 product, news_items）
            key: 逻辑 key

        Returns:
            格式化的 Redis key
        """
        return f"{cls.CACHE_PREFIX}:{entity_type}:{key}"

    @classmethod
    def compressed_entry(cls, entity_type: str, key: str) -> str:
        """生成压缩缓存条目 key。"""
        return f"{cls.cache_entry(entity_type, key)}:{cls.COMPRESSED_SUFFIX}"

    @classmethod
    def entity_pattern(cls, entity_type: str) -> str:
        """生成某实体类型全部条目的模式匹配 key（用于 SCAN）。"""
        return f"{cls.CACHE_PREFIX}:{entity_type}:*"


class NewsCacheKeys:
    """聚合查询的逻辑缓存 key（在 news_items 实体类型下）。

    相同参数总是生成相同的 key。
    """

    @staticmethod
    def latest(limit: int) -> str:
        return f"latest:{limit}"

    @staticmethod
    def search(query: str, limit: int) -> str:
        return f"search:{query}:{limit}"

    @staticmethod
    def date_range(start_iso: str, end_iso: str, limit: int) -> str:
        return f"range:{start_iso}:{end_iso}:{limit}"
