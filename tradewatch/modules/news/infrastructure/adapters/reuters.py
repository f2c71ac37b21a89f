"""Reuters news adapter."""

from datetime import datetime
from typing import Any

from tradewatch.modules.news.domain.entities import ImpactLevel, NormalizedItem, SourceType
from tradewatch.modules.news.domain.impact import matched_sectors, sector_phrase
from tradewatch.modules.news.infrastructure.adapters.base import BaseNewsAdapter

DEFAULT_CHANNELS = "business,economy,markets"


class ReutersAdapter(BaseNewsAdapter):
    """Reuters 新闻 API。

    响应格式: {"articles": [{"id", "headline", "body", "dateTime", "url", ...}]}
    """

    source_id = "reuters"
    source_name = "Reuters"
    source_type = SourceType.NEWS

    async def get_by_channel(self, channel: str, limit: int) -> list[NormalizedItem]:
        return await self._guarded(
            "get_by_channel",
            limit,
            lambda: self._articles("/news/v1/latest", {"limit": limit, "channel": channel}),
        )

    async def get_by_tag(self, tag: str, limit: int) -> list[NormalizedItem]:
        return await self._guarded(
            "get_by_tag",
            limit,
            lambda: self._articles("/news/v1/latest", {"limit": limit, "tag": tag}),
        )

    async def _fetch_latest(self, limit: int) -> list[Any]:
        return await self._articles(
            "/news/v1/latest",
            {"limit": limit, "channel": DEFAULT_CHANNELS},
        )

    async def _fetch_search(self, query: str, limit: int) -> list[Any]:
        return await self._articles(
            "/news/v1/search",
            {"q": query, "limit": limit, "sortBy": "relevance"},
        )

    async def _fetch_date_range(self, start: datetime, end: datetime, limit: int) -> list[Any]:
        return await self._articles(
            "/news/v1/search",
            {
                "from": self._format_datetime(start),
                "to": self._format_datetime(end),
                "limit": limit,
                "sortBy": "date",
            },
        )

    async def _articles(self, path: str, params: dict[str, Any]) -> list[Any]:
        payload = await self.client.get(path, params=params)
        if not isinstance(payload, dict):
            raise ValueError(f"Unexpected Reuters payload: {type(payload).__name__}")
        articles = payload.get("articles") or []
        if not isinstance(articles, list):
            raise ValueError("Reuters payload field 'articles' is not a list")
        return articles

    def _normalize(self, raw: dict[str, Any]) -> NormalizedItem | None:
        return self._build_item(
            raw,
            upstream_id=raw.get("id"),
            title=raw.get("headline"),
            body=raw.get("body"),
            url=raw.get("url"),
            published=raw.get("dateTime"),
            categories=[*self._string_list(raw.get("channels")), *self._string_list(raw.get("tags"))],
            metadata={
                "authors": self._string_list(raw.get("authors")),
                "images": [i for i in raw.get("images") or [] if isinstance(i, dict)],
            },
        )

    def _describe_impact(
        self,
        level: ImpactLevel,
        categories: tuple[str, ...],
        raw: dict[str, Any],
    ) -> str:
        sectors = matched_sectors(categories)
        if sectors:
            return f"This news may have a {level} impact on {sector_phrase(sectors)}."
        return f"This news may have a {level} impact on international trade."
