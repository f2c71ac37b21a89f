"""适配器基类。

每个具体适配器持有一个 TransportClient，把上游响应映射为 NormalizedItem。
基类负责统一的错误隔离：任何抓取或解析失败都记录日志并返回空列表。
"""

from __future__ import annotations

import hashlib
import math
import re
from abc import abstractmethod
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime
from typing import Any, ClassVar

from loguru import logger
from pydantic import ValidationError

from tradewatch.core.infrastructure.http import ApiError, TransportClient
from tradewatch.core.infrastructure.logging import BusinessEvents
from tradewatch.modules.news.domain.adapter import SourceAdapter
from tradewatch.modules.news.domain.entities import (
    ImpactAnnotation,
    ImpactLevel,
    NormalizedItem,
    SourceType,
)
from tradewatch.modules.news.domain.impact import (
    analyze_impact_level,
    dedupe_categories,
    extract_categories,
    is_tariff_related,
)

# 映射阶段的失败（上游返回了意料之外的结构）
_MAPPING_FAILURES: tuple[type[Exception], ...] = (
    ValueError,
    TypeError,
    KeyError,
    AttributeError,
    ValidationError,
)


class BaseNewsAdapter(SourceAdapter):
    """基于 TransportClient 的新闻源适配器基类。"""

    source_id: ClassVar[str]
    source_name: ClassVar[str]
    source_type: ClassVar[SourceType]

    def __init__(self, client: TransportClient):
        self.client = client

    async def get_latest(self, limit: int) -> list[NormalizedItem]:
        return await self._guarded("get_latest", limit, lambda: self._fetch_latest(limit))

    async def search(self, query: str, limit: int) -> list[NormalizedItem]:
        return await self._guarded("search", limit, lambda: self._fetch_search(query, limit))

    async def get_by_date_range(
        self,
        start: datetime,
        end: datetime,
        limit: int,
    ) -> list[NormalizedItem]:
        return await self._guarded(
            "get_by_date_range",
            limit,
            lambda: self._fetch_date_range(start, end, limit),
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    # ============ 子类实现 ============

    @abstractmethod
    async def _fetch_latest(self, limit: int) -> Iterable[Any]: ...

    @abstractmethod
    async def _fetch_search(self, query: str, limit: int) -> Iterable[Any]: ...

    @abstractmethod
    async def _fetch_date_range(
        self,
        start: datetime,
        end: datetime,
        limit: int,
    ) -> Iterable[Any]: ...

    @abstractmethod
    def _normalize(self, raw: dict[str, Any]) -> NormalizedItem | None:
        """将单条上游记录映射为 NormalizedItem；无法映射时返回 None。"""

    def _describe_impact(
        self,
        level: ImpactLevel,
        categories: tuple[str, ...],
        raw: dict[str, Any],
    ) -> str:
        return f"This news may have a {level} impact on international trade."

    # ============ 公共流程 ============

    async def _guarded(
        self,
        operation: str,
        limit: int,
        fetch: Callable[[], Awaitable[Iterable[Any]]],
    ) -> list[NormalizedItem]:
        """执行抓取并映射；任何失败都降级为空列表。"""
        if limit <= 0:
            return []
        try:
            records = await fetch()
            items = self._normalize_many(records)
        except ApiError as exc:
            self._report_failure(operation, f"{exc.error_type.value}: {exc.message}")
            return []
        except _MAPPING_FAILURES as exc:
            self._report_failure(operation, f"{type(exc).__name__}: {exc}")
            return []
        return items[:limit]

    def _normalize_many(self, records: Iterable[Any]) -> list[NormalizedItem]:
        items: list[NormalizedItem] = []
        skipped = 0
        for raw in records:
            if not isinstance(raw, dict):
                skipped += 1
                continue
            try:
                item = self._normalize(raw)
            except _MAPPING_FAILURES as exc:
                logger.debug(f"[{self.source_id}] Skipping malformed record: {exc}")
                item = None
            if item is None:
                skipped += 1
                continue
            items.append(item)
        if skipped:
            logger.debug(f"[{self.source_id}] Skipped {skipped} record(s) without usable data")
        return items

    def _report_failure(self, operation: str, error: str) -> None:
        logger.warning(f"[{self.source_id}] {operation} failed: {error}")
        BusinessEvents.source_fetch_failed(
            source_id=self.source_id,
            operation=operation,
            error=error,
        )

    def _build_item(
        self,
        raw: dict[str, Any],
        *,
        upstream_id: object,
        title: object,
        body: object,
        url: object,
        published: object,
        categories: Iterable[object] = (),
        metadata: dict[str, Any] | None = None,
    ) -> NormalizedItem | None:
        """组装 NormalizedItem：清洗文本、派生分类并计算影响标注。"""
        clean_title = self._clean_text(title)
        if not clean_title:
            return None
        clean_body = self._clean_text(body)
        clean_url = str(url).strip() if isinstance(url, str) and url.strip() else None

        upstream = [c for c in categories if isinstance(c, str)]
        tags = dedupe_categories(
            [
                *upstream,
                *extract_categories(clean_title, clean_body, self.source_type, upstream),
            ]
        )

        impact = None
        if is_tariff_related(clean_title, clean_body, tags):
            level = analyze_impact_level(clean_title, clean_body)
            impact = ImpactAnnotation(
                level=level,
                description=self._describe_impact(level, tags, raw),
            )

        return NormalizedItem(
            id=f"{self.source_id}:{self._stable_id(upstream_id, clean_url, clean_title)}",
            source_id=self.source_id,
            source=self.source_name,
            title=clean_title,
            body=clean_body,
            url=clean_url,
            published_at=self._parse_datetime_value(published),
            categories=tags,
            impact=impact,
            metadata=metadata or {},
        )

    # ============ 工具方法 ============

    @staticmethod
    def _stable_id(upstream_id: object, url: str | None, title: str) -> str:
        if isinstance(upstream_id, (str, int)) and str(upstream_id).strip():
            return str(upstream_id).strip()
        raw = (url or title).strip().lower().rstrip("/")
        return hashlib.sha256(raw.encode()).hexdigest()[:32]

    @staticmethod
    def _clean_text(value: object) -> str:
        if not isinstance(value, str):
            return ""
        cleaned = re.sub(r"<[^>]+>", "", value)
        return " ".join(cleaned.split())

    @staticmethod
    def _string_list(value: object) -> list[str]:
        if not isinstance(value, list):
            return []
        return [v.strip() for v in value if isinstance(v, str) and v.strip()]

    @staticmethod
    def _format_datetime(value: datetime) -> str:
        """ISO-8601 UTC，毫秒精度，Z 结尾。"""
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        value = value.astimezone(UTC)
        return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"

    @staticmethod
    def _parse_datetime_value(value: object) -> datetime | None:
        if value is None or isinstance(value, bool):
            return None

        if isinstance(value, (int, float)):
            if not math.isfinite(value):
                return None
            timestamp = float(value)
            if timestamp > 1_000_000_000_000:
                timestamp /= 1000.0
            if timestamp <= 0:
                return None
            try:
                return datetime.fromtimestamp(timestamp, tz=UTC)
            except (OverflowError, OSError, ValueError):
                return None

        if isinstance(value, str):
            text = value.strip()
            if not text:
                return None

            if text.isdigit():
                return BaseNewsAdapter._parse_datetime_value(int(text))

            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                return None
            if parsed.tzinfo is None:
                return parsed.replace(tzinfo=UTC)
            return parsed

        return None
