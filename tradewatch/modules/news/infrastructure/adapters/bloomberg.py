"""Bloomberg news adapter."""

from datetime import datetime
from typing import Any

from tradewatch.modules.news.domain.entities import ImpactLevel, NormalizedItem, SourceType
from tradewatch.modules.news.domain.impact import matched_regions, matched_sectors, sector_phrase
from tradewatch.modules.news.infrastructure.adapters.base import BaseNewsAdapter

DEFAULT_TOPICS = "TRADE,ECONOMY,MARKETS"
SECRET_HEADER = "X-BAPI-SECRET"


class BloombergAdapter(BaseNewsAdapter):
    """Bloomberg stories API。

    除 API key 外还需要 X-BAPI-SECRET 请求头（由工厂写入 ClientConfig.headers）。
    """

    source_id = "bloomberg"
    source_name = "Bloomberg"
    source_type = SourceType.NEWS

    async def get_by_industry(self, industry: str, limit: int) -> list[NormalizedItem]:
        return await self._filtered("get_by_industry", "industries", industry, limit)

    async def get_by_region(self, region: str, limit: int) -> list[NormalizedItem]:
        return await self._filtered("get_by_region", "regions", region, limit)

    async def get_by_market(self, market: str, limit: int) -> list[NormalizedItem]:
        return await self._filtered("get_by_market", "markets", market, limit)

    async def _filtered(
        self,
        operation: str,
        field: str,
        value: str,
        limit: int,
    ) -> list[NormalizedItem]:
        return await self._guarded(
            operation,
            limit,
            lambda: self._stories(
                "/stories/latest",
                {field: value, "limit": limit, "template": "FULL"},
            ),
        )

    async def _fetch_latest(self, limit: int) -> list[Any]:
        return await self._stories(
            "/stories/latest",
            {"limit": limit, "template": "FULL", "topics": DEFAULT_TOPICS},
        )

    async def _fetch_search(self, query: str, limit: int) -> list[Any]:
        return await self._stories(
            "/stories/search",
            {"query": query, "limit": limit, "template": "FULL", "sortBy": "relevance"},
        )

    async def _fetch_date_range(self, start: datetime, end: datetime, limit: int) -> list[Any]:
        date_range = f"{self._format_datetime(start)}/{self._format_datetime(end)}"
        return await self._stories(
            "/stories/search",
            {"dateRange": date_range, "limit": limit, "template": "FULL", "sortBy": "date"},
        )

    async def _stories(self, path: str, params: dict[str, Any]) -> list[Any]:
        payload = await self.client.get(path, params=params)
        if not isinstance(payload, dict):
            raise ValueError(f"Unexpected Bloomberg payload: {type(payload).__name__}")
        stories = payload.get("stories") or []
        if not isinstance(stories, list):
            raise ValueError("Bloomberg payload field 'stories' is not a list")
        return stories

    def _normalize(self, raw: dict[str, Any]) -> NormalizedItem | None:
        body = raw.get("text") or raw.get("summary")
        return self._build_item(
            raw,
            upstream_id=raw.get("storyId"),
            title=raw.get("title"),
            body=body,
            url=raw.get("webUrl"),
            published=raw.get("publishedAt"),
            categories=[
                *self._string_list(raw.get("topics")),
                *self._string_list(raw.get("industries")),
                *self._string_list(raw.get("regions")),
                *self._string_list(raw.get("markets")),
            ],
            metadata={
                "summary": self._clean_text(raw.get("summary")) or None,
                "byline": self._clean_text(raw.get("byline")) or None,
                "multimedia": [m for m in raw.get("multimedia") or [] if isinstance(m, dict)],
            },
        )

    def _describe_impact(
        self,
        level: ImpactLevel,
        categories: tuple[str, ...],
        raw: dict[str, Any],
    ) -> str:
        description = f"This news may have a {level} impact"
        regions = matched_regions(categories)
        if regions:
            description += f" in {', '.join(regions)}"
        sectors = matched_sectors(categories)
        if sectors:
            description += f" on {sector_phrase(sectors)}"
        return description + "."
