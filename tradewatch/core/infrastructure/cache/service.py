"""缓存服务。

位于昂贵或受限流调用之前的键值缓存，支持：
- 按实体类型的 TTL（显式参数 > 类型配置 > 全局默认）
- 大于阈值的序列化值透明压缩（gzip + base64），使用独立的物理 key
- 按实体类型的命中/未命中/错误统计
- 单次往返的批量读写（pipeline）

任何缓存失败都只会降级为 miss 并计入统计，绝不向调用方抛出。
"""

from __future__ import annotations

import base64
import binascii
import gzip
import json
import threading
import zlib
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Any

from loguru import logger
from redis.exceptions import RedisError

from tradewatch.core.config import settings
from tradewatch.core.domain.exceptions import ConfigurationError, TradewatchError
from tradewatch.core.infrastructure.health import CacheHealthResult
from tradewatch.core.infrastructure.logging import BusinessEvents
from tradewatch.core.infrastructure.redis.client import RedisClient
from tradewatch.core.infrastructure.redis.keys import RedisKeys


class CacheEntityType(StrEnum):
    """可缓存的实体类型。"""

    PRODUCT = "product"
    CATEGORY = "category"
    USER_PROFILE = "user_profile"
    USER_PREFERENCES = "user_preferences"
    PRICE_HISTORY = "price_history"
    SAVED_PRODUCTS = "saved_products"
    NEWS_ITEMS = "news_items"


DEFAULT_TYPE_TTLS: dict[CacheEntityType, int] = {
    CacheEntityType.PRODUCT: 3600,  # 1 hour
    CacheEntityType.CATEGORY: 86400,  # 24 hours
    CacheEntityType.USER_PROFILE: 1800,  # 30 minutes
    CacheEntityType.USER_PREFERENCES: 1800,
    CacheEntityType.PRICE_HISTORY: 3600,
    CacheEntityType.SAVED_PRODUCTS: 1800,
    CacheEntityType.NEWS_ITEMS: 3600,
}


class CacheError(TradewatchError):
    """Serialization, transport or decompression failure inside the cache."""

    error_code = "CACHE_ERROR"


# 缓存边界内会被吞掉并计入 errors 的异常
_CACHE_FAILURES: tuple[type[BaseException], ...] = (
    CacheError,
    RedisError,
    OSError,
    EOFError,
    ValueError,
    TypeError,
    zlib.error,
)


@dataclass
class CacheStats:
    """单个实体类型的统计计数。"""

    hits: int = 0
    misses: int = 0
    errors: int = 0
    last_error: str | None = None

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class CacheService:
    """Redis 缓存服务。"""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        password: str | None = None,
        default_ttl: int | None = None,
        *,
        db: int | None = None,
        ttl_overrides: Mapping[str, int] | None = None,
        compression_threshold: int | None = None,
        redis_client: RedisClient | None = None,
    ):
        """初始化缓存服务。

        Args:
            host/port/password/db: Redis 连接参数，默认取自配置
            default_ttl: 全局默认 TTL（秒）
            ttl_overrides: 按实体类型覆盖的 TTL
            compression_threshold: 序列化后超过该字节数即压缩
            redis_client: 预先构造的 RedisClient（测试时注入）
        """
        self._redis = redis_client or RedisClient(
            host=host, port=port, password=password, db=db
        )
        self.default_ttl = default_ttl or settings.CACHE_DEFAULT_TTL
        self.compression_threshold = (
            compression_threshold
            if compression_threshold is not None
            else settings.CACHE_COMPRESSION_THRESHOLD
        )

        self._type_ttls: dict[CacheEntityType, int] = dict(DEFAULT_TYPE_TTLS)
        overrides = settings.CACHE_TTL_OVERRIDES if ttl_overrides is None else ttl_overrides
        for name, ttl in overrides.items():
            try:
                entity_type = CacheEntityType(name)
            except ValueError as exc:
                raise ConfigurationError(f"Unknown cache entity type in TTL overrides: {name}") from exc
            self._type_ttls[entity_type] = int(ttl)

        self._stats: dict[CacheEntityType, CacheStats] = {
            entity_type: CacheStats() for entity_type in CacheEntityType
        }
        self._stats_lock = threading.Lock()

    # ============ 单键操作 ============

    async def get(self, entity_type: CacheEntityType | str, key: str) -> Any | None:
        """读取缓存值；miss 或失败时返回 None。

        先检查明文 key，再检查压缩变体，两者在同一次往返中读取。
        """
        entity_type = CacheEntityType(entity_type)
        try:
            plain, compressed = await self._redis.mget(
                RedisKeys.cache_entry(entity_type, key),
                RedisKeys.compressed_entry(entity_type, key),
            )
            value = self._decode_entry(plain, compressed)
        except _CACHE_FAILURES as exc:
            self._record_error(entity_type, "get", exc, key=key)
            self._record_miss(entity_type)
            return None

        if value is _MISS:
            self._record_miss(entity_type)
            return None
        self._record_hit(entity_type)
        return value

    async def set(
        self,
        entity_type: CacheEntityType | str,
        key: str,
        value: Any,
        ttl: int | None = None,
    ) -> bool:
        """写入缓存值（总是整体替换）。

        Returns:
            写入成功返回 True，失败（已计入统计）返回 False
        """
        entity_type = CacheEntityType(entity_type)
        try:
            payload, compressed = self._encode_value(value)
            pipe = self._redis.pipeline(transaction=True)
            self._queue_write(pipe, entity_type, key, payload, compressed, ttl)
            await self._redis.execute_pipeline(pipe)
        except _CACHE_FAILURES as exc:
            self._record_error(entity_type, "set", exc, key=key)
            return False
        return True

    async def invalidate(self, entity_type: CacheEntityType | str, key: str) -> None:
        """删除一个逻辑 key 的明文与压缩变体。"""
        entity_type = CacheEntityType(entity_type)
        try:
            await self._redis.delete(
                RedisKeys.cache_entry(entity_type, key),
                RedisKeys.compressed_entry(entity_type, key),
            )
        except _CACHE_FAILURES as exc:
            self._record_error(entity_type, "invalidate", exc, key=key)

    async def clear_type(self, entity_type: CacheEntityType | str) -> int:
        """清除某实体类型的全部缓存，返回删除的物理 key 数。"""
        entity_type = CacheEntityType(entity_type)
        deleted = 0
        batch: list[str] = []
        try:
            async for physical_key in self._redis.scan_keys(
                RedisKeys.entity_pattern(entity_type)
            ):
                batch.append(physical_key)
                if len(batch) >= 500:
                    deleted += await self._redis.delete(*batch)
                    batch = []
            if batch:
                deleted += await self._redis.delete(*batch)
        except _CACHE_FAILURES as exc:
            self._record_error(entity_type, "clear_type", exc)
        if deleted:
            logger.info(f"Cleared {deleted} cache keys for type {entity_type}")
        return deleted

    # ============ 批量操作 ============

    async def batch_get(
        self,
        entity_type: CacheEntityType | str,
        keys: list[str],
    ) -> list[Any | None]:
        """单次往返批量读取；单个 key 的失败只影响该 key（视为 miss）。"""
        entity_type = CacheEntityType(entity_type)
        if not keys:
            return []

        try:
            pipe = self._redis.pipeline(transaction=False)
            for key in keys:
                pipe.get(RedisKeys.cache_entry(entity_type, key))
            for key in keys:
                pipe.get(RedisKeys.compressed_entry(entity_type, key))
            results = await self._redis.execute_pipeline(pipe, raise_on_error=False)
        except _CACHE_FAILURES as exc:
            self._record_error(entity_type, "batch_get", exc, keys=len(keys))
            for _ in keys:
                self._record_miss(entity_type)
            return [None] * len(keys)

        values: list[Any | None] = []
        for index, key in enumerate(keys):
            plain = results[index]
            compressed = results[index + len(keys)]
            try:
                for raw in (plain, compressed):
                    if isinstance(raw, Exception):
                        raise CacheError(f"Pipeline command failed: {raw}")
                value = self._decode_entry(plain, compressed)
            except _CACHE_FAILURES as exc:
                self._record_error(entity_type, "batch_get", exc, key=key)
                value = _MISS

            if value is _MISS:
                self._record_miss(entity_type)
                values.append(None)
            else:
                self._record_hit(entity_type)
                values.append(value)
        return values

    async def batch_set(
        self,
        entity_type: CacheEntityType | str,
        items: Mapping[str, Any] | Iterable[tuple[str, Any]],
        ttl: int | None = None,
    ) -> int:
        """单次往返批量写入，返回成功写入的条目数。"""
        entity_type = CacheEntityType(entity_type)
        pairs = list(items.items()) if isinstance(items, Mapping) else list(items)
        if not pairs:
            return 0

        pipe = self._redis.pipeline(transaction=False)
        queued: list[str] = []
        for key, value in pairs:
            try:
                payload, compressed = self._encode_value(value)
            except _CACHE_FAILURES as exc:
                self._record_error(entity_type, "batch_set", exc, key=key)
                continue
            self._queue_write(pipe, entity_type, key, payload, compressed, ttl)
            queued.append(key)

        if not queued:
            return 0

        try:
            results = await self._redis.execute_pipeline(pipe, raise_on_error=False)
        except _CACHE_FAILURES as exc:
            self._record_error(entity_type, "batch_set", exc, keys=len(queued))
            return 0

        written = 0
        # 每个条目对应两条命令：SET 目标 key + DEL 另一变体
        for index, key in enumerate(queued):
            set_result, del_result = results[2 * index], results[2 * index + 1]
            failure = next(
                (r for r in (set_result, del_result) if isinstance(r, Exception)),
                None,
            )
            if failure is not None:
                self._record_error(entity_type, "batch_set", failure, key=key)
            else:
                written += 1
        return written

    # ============ 新闻条目便捷方法 ============

    async def cache_news_items(
        self,
        key: str,
        items: list[dict[str, Any]],
        ttl: int | None = None,
    ) -> bool:
        return await self.set(CacheEntityType.NEWS_ITEMS, key, items, ttl)

    async def get_cached_news_items(self, key: str) -> list[dict[str, Any]] | None:
        return await self.get(CacheEntityType.NEWS_ITEMS, key)

    # ============ 统计与健康 ============

    def resolve_ttl(self, entity_type: CacheEntityType | str, ttl: int | None = None) -> int:
        """TTL 优先级：显式参数 > 实体类型配置 > 全局默认。

        非正数的显式 TTL 视为未指定。
        """
        if ttl is not None and ttl > 0:
            return int(ttl)
        return self._type_ttls.get(CacheEntityType(entity_type)) or self.default_ttl

    def get_stats(self) -> dict[str, CacheStats]:
        """返回统计快照（副本）。"""
        with self._stats_lock:
            return {str(t): replace(s) for t, s in self._stats.items()}

    def reset_stats(self) -> None:
        with self._stats_lock:
            for entity_type in self._stats:
                self._stats[entity_type] = CacheStats()

    async def health_check(self) -> CacheHealthResult:
        return await self._redis.health_check()

    async def close(self) -> None:
        await self._redis.close()

    # ============ 内部实现 ============

    def _queue_write(
        self,
        pipe: Any,
        entity_type: CacheEntityType,
        key: str,
        payload: str,
        compressed: bool,
        ttl: int | None,
    ) -> None:
        plain_key = RedisKeys.cache_entry(entity_type, key)
        compressed_key = RedisKeys.compressed_entry(entity_type, key)
        target, stale = (compressed_key, plain_key) if compressed else (plain_key, compressed_key)
        pipe.set(target, payload, ex=self.resolve_ttl(entity_type, ttl))
        pipe.delete(stale)

    def _encode_value(self, value: Any) -> tuple[str, bool]:
        """序列化并在超过阈值时压缩，返回 (物理值, 是否压缩)。"""
        try:
            serialized = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise CacheError(f"Value is not JSON serializable: {exc}") from exc

        if len(serialized.encode("utf-8")) > self.compression_threshold:
            return self._compress(serialized), True
        return serialized, False

    def _decode_entry(self, plain: str | None, compressed: str | None) -> Any:
        if plain is not None:
            raw = plain
        elif compressed is not None:
            raw = self._decompress(compressed)
        else:
            return _MISS
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise CacheError(f"Corrupt cache payload: {exc}") from exc

    @staticmethod
    def _compress(data: str) -> str:
        return base64.b64encode(gzip.compress(data.encode("utf-8"))).decode("ascii")

    @staticmethod
    def _decompress(data: str) -> str:
        try:
            return gzip.decompress(base64.b64decode(data, validate=True)).decode("utf-8")
        except (binascii.Error, OSError, EOFError, zlib.error, UnicodeDecodeError) as exc:
            raise CacheError(f"Failed to decompress cache payload: {exc}") from exc

    def _record_hit(self, entity_type: CacheEntityType) -> None:
        with self._stats_lock:
            self._stats[entity_type].hits += 1

    def _record_miss(self, entity_type: CacheEntityType) -> None:
        with self._stats_lock:
            self._stats[entity_type].misses += 1

    def _record_error(
        self,
        entity_type: CacheEntityType,
        operation: str,
        exc: BaseException,
        **context: Any,
    ) -> None:
        with self._stats_lock:
            stats = self._stats[entity_type]
            stats.errors += 1
            stats.last_error = f"{type(exc).__name__}: {exc}"
        logger.error(f"Cache {operation} failed for {entity_type}: {exc}")
        BusinessEvents.cache_error(
            entity_type=str(entity_type),
            operation=operation,
            error=str(exc),
            **context,
        )


class _Miss:
    """区分 miss 与缓存的 JSON null。"""

    def __repr__(self) -> str:
        return "<MISS>"


_MISS: Any = _Miss()
