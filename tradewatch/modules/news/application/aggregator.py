"""新闻聚合服务。

把一个逻辑查询并发扇出到所有启用的来源，支持：
- 按权重分配每个来源的请求条数
- 单个来源失败不影响整体结果
- 合并后按发布时间倒序并按 ID 去重
- 缓存优先，miss 时写回合并结果
"""

from __future__ import annotations

import asyncio
import time
from collections import Counter
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime, timedelta
from typing import Any

from loguru import logger
from pydantic import ValidationError

from tradewatch.core.config import settings
from tradewatch.core.infrastructure.cache import CacheEntityType, CacheService
from tradewatch.core.infrastructure.logging import BusinessEvents
from tradewatch.core.infrastructure.redis.keys import NewsCacheKeys
from tradewatch.modules.news.domain.adapter import SourceAdapter
from tradewatch.modules.news.domain.entities import (
    ImpactLevel,
    NormalizedItem,
    SourceDescriptor,
)

SourceCall = Callable[[SourceAdapter, int], Awaitable[list[NormalizedItem]]]


def merge_items(results: Iterable[list[NormalizedItem]]) -> list[NormalizedItem]:
    """拼接、按发布时间倒序排序（无时间的排最后），相同 ID 保留排序后首个。"""
    combined = [item for items in results for item in items]
    combined.sort(
        key=lambda item: (
            item.published_at is None,
            -item.published_at.timestamp() if item.published_at else 0.0,
        )
    )
    seen: set[str] = set()
    merged: list[NormalizedItem] = []
    for item in combined:
        if item.id in seen:
            continue
        seen.add(item.id)
        merged.append(item)
    return merged


class NewsAggregatorService:
    """多来源新闻聚合服务。"""

    def __init__(
        self,
        cache: CacheService,
        sources: Iterable[SourceDescriptor] = (),
        *,
        cache_ttl: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """初始化聚合服务。

        Args:
            cache: 缓存服务
            sources: 来源列表
            cache_ttl: 合并结果的缓存 TTL，None 时使用 news_items 类型配置
            clock: 返回当前 UTC 时间的函数（测试时注入）
        """
        self.cache = cache
        self.cache_ttl = cache_ttl
        self._clock = clock or (lambda: datetime.now(UTC))
        self._sources: list[SourceDescriptor] = []
        for descriptor in sources:
            self.add_source(descriptor)

    # ============ 来源管理 ============

    @property
    def sources(self) -> tuple[SourceDescriptor, ...]:
        return tuple(self._sources)

    def add_source(self, descriptor: SourceDescriptor) -> None:
        if any(s.source_id == descriptor.source_id for s in self._sources):
            raise ValueError(f"Source already registered: {descriptor.source_id}")
        self._sources.append(descriptor)

    def set_source_enabled(self, source_id: str, enabled: bool) -> None:
        for descriptor in self._sources:
            if descriptor.source_id == source_id:
                descriptor.enabled = enabled
                logger.info(f"Source {source_id} {'enabled' if enabled else 'disabled'}")
                return
        raise ValueError(f"Unknown source: {source_id}")

    def calculate_source_limits(self, limit: int) -> dict[str, int]:
        """按权重计算每个启用来源的请求条数。

        quota = max(1, round(w / Σw * limit))，四舍五入取半进一；
        权重之和为 0 时按等权处理。合计可能略超 limit。
        """
        enabled = [s for s in self._sources if s.enabled]
        if not enabled:
            return {}
        total = sum(s.weight for s in enabled)
        limits: dict[str, int] = {}
        for descriptor in enabled:
            share = descriptor.weight / total if total > 0 else 1 / len(enabled)
            limits[descriptor.source_id] = max(1, int(share * limit + 0.5))
        return limits

    # ============ 查询 ============

    async def get_latest(self, limit: int | None = None) -> list[NormalizedItem]:
        limit = limit or settings.AGGREGATOR_DEFAULT_LIMIT
        return await self._cached(
            "get_latest",
            NewsCacheKeys.latest(limit),
            limit,
            lambda adapter, quota: adapter.get_latest(quota),
        )

    async def search(self, query: str, limit: int | None = None) -> list[NormalizedItem]:
        limit = limit or settings.AGGREGATOR_DEFAULT_LIMIT
        return await self._cached(
            "search",
            NewsCacheKeys.search(query, limit),
            limit,
            lambda adapter, quota: adapter.search(query, quota),
        )

    async def get_by_date_range(
        self,
        start: datetime,
        end: datetime,
        limit: int | None = None,
    ) -> list[NormalizedItem]:
        limit = limit or settings.AGGREGATOR_DEFAULT_LIMIT
        return await self._cached(
            "get_by_date_range",
            NewsCacheKeys.date_range(start.isoformat(), end.isoformat(), limit),
            limit,
            lambda adapter, quota: adapter.get_by_date_range(start, end, quota),
        )

    async def get_by_impact_level(
        self,
        level: ImpactLevel | str,
        limit: int | None = None,
    ) -> list[NormalizedItem]:
        """从最新条目中筛选指定影响等级。"""
        limit = limit or settings.AGGREGATOR_DEFAULT_LIMIT
        level = ImpactLevel(level)
        items = await self.get_latest(limit * 2)
        return [i for i in items if i.impact is not None and i.impact.level == level][:limit]

    async def get_by_category(
        self,
        category: str,
        limit: int | None = None,
    ) -> list[NormalizedItem]:
        limit = limit or settings.AGGREGATOR_DEFAULT_LIMIT
        items = await self.get_latest(limit * 2)
        return [i for i in items if i.has_category(category)][:limit]

    async def get_trending_topics(self, days: int | None = None) -> list[tuple[str, int]]:
        """统计最近 days 天内各分类出现次数，按次数倒序（同次数保持首次出现顺序）。"""
        days = days or settings.TRENDING_WINDOW_DAYS
        # 截断到分钟，使短时间内的重复调用命中同一缓存 key
        end = self._clock().replace(second=0, microsecond=0)
        start = end - timedelta(days=days)
        items = await self.get_by_date_range(start, end, settings.TRENDING_SAMPLE_SIZE)

        counts: Counter[str] = Counter()
        for item in items:
            counts.update(item.categories)
        return sorted(counts.items(), key=lambda pair: -pair[1])

    async def close(self) -> None:
        await asyncio.gather(
            *(s.adapter.aclose() for s in self._sources),
            return_exceptions=True,
        )
        await self.cache.close()

    # ============ 内部实现 ============

    async def _cached(
        self,
        operation: str,
        cache_key: str,
        limit: int,
        call: SourceCall,
    ) -> list[NormalizedItem]:
        cached = await self.cache.get_cached_news_items(cache_key)
        if cached is not None:
            items = self._deserialize(cache_key, cached)
            if items is not None:
                return items

        merged = await self._fan_out(operation, limit, call)
        await self.cache.set(
            CacheEntityType.NEWS_ITEMS,
            cache_key,
            [item.model_dump(mode="json") for item in merged],
            self.cache_ttl,
        )
        return merged

    async def _fan_out(
        self,
        operation: str,
        limit: int,
        call: SourceCall,
    ) -> list[NormalizedItem]:
        start_time = time.monotonic()
        enabled = [s for s in self._sources if s.enabled]
        if not enabled:
            BusinessEvents.feature_degraded(
                feature="news_aggregation",
                reason="no enabled sources",
                operation=operation,
            )
            return []

        limits = self.calculate_source_limits(limit)
        results = await asyncio.gather(
            *(call(s.adapter, limits[s.source_id]) for s in enabled),
            return_exceptions=True,
        )

        collected: list[list[NormalizedItem]] = []
        failed = 0
        for descriptor, result in zip(enabled, results, strict=True):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                failed += 1
                logger.warning(f"Source {descriptor.source_id} failed during {operation}: {result}")
                BusinessEvents.source_fetch_failed(
                    source_id=descriptor.source_id,
                    operation=operation,
                    error=f"{type(result).__name__}: {result}",
                )
                continue
            if not result:
                logger.debug(f"Source {descriptor.source_id} returned no items for {operation}")
            collected.append(result)

        merged = merge_items(collected)
        BusinessEvents.aggregate_completed(
            operation=operation,
            source_count=len(enabled),
            failed_count=failed,
            item_count=len(merged),
            latency_ms=int((time.monotonic() - start_time) * 1000),
        )
        return merged

    def _deserialize(self, cache_key: str, cached: Any) -> list[NormalizedItem] | None:
        if not isinstance(cached, list):
            logger.warning(f"Ignoring malformed cache entry {cache_key}")
            return None
        try:
            return [NormalizedItem.model_validate(entry) for entry in cached]
        except ValidationError as exc:
            logger.warning(f"Ignoring malformed cache entry {cache_key}: {exc}")
            return None
