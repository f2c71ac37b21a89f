"""World Trade Organization news adapter."""

from datetime import datetime
from typing import Any

from tradewatch.modules.news.domain.entities import ImpactLevel, NormalizedItem, SourceType
from tradewatch.modules.news.infrastructure.adapters.base import BaseNewsAdapter


class WtoAdapter(BaseNewsAdapter):
    """WTO 公告/新闻 API。

    响应为条目数组，条目没有独立 ID，使用 documentUrl 派生稳定标识。
    """

    source_id = "wto"
    source_name = "World Trade Organization"
    source_type = SourceType.GOVERNMENT

    async def get_by_member(self, member: str, limit: int) -> list[NormalizedItem]:
        return await self._guarded(
            "get_by_member",
            limit,
            lambda: self._documents(
                "/news",
                {"member": member, "limit": limit, "sort": "publicationDate:desc"},
            ),
        )

    async def get_by_subject(self, subject: str, limit: int) -> list[NormalizedItem]:
        return await self._guarded(
            "get_by_subject",
            limit,
            lambda: self._documents(
                "/news",
                {"subject": subject, "limit": limit, "sort": "publicationDate:desc"},
            ),
        )

    async def _fetch_latest(self, limit: int) -> list[Any]:
        return await self._documents("/news", {"limit": limit, "sort": "publicationDate:desc"})

    async def _fetch_search(self, query: str, limit: int) -> list[Any]:
        return await self._documents(
            "/news/search",
            {"q": query, "limit": limit, "sort": "relevance"},
        )

    async def _fetch_date_range(self, start: datetime, end: datetime, limit: int) -> list[Any]:
        return await self._documents(
            "/news",
            {
                "startDate": self._format_datetime(start),
                "endDate": self._format_datetime(end),
                "limit": limit,
                "sort": "publicationDate:desc",
            },
        )

    async def _documents(self, path: str, params: dict[str, Any]) -> list[Any]:
        payload = await self.client.get(path, params=params)
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise ValueError(f"Unexpected WTO payload: {type(payload).__name__}")
        return payload

    def _normalize(self, raw: dict[str, Any]) -> NormalizedItem | None:
        document_type = self._clean_text(raw.get("type"))
        members = self._string_list(raw.get("members"))
        subjects = self._string_list(raw.get("subjects"))
        return self._build_item(
            raw,
            upstream_id=raw.get("id"),
            title=raw.get("title"),
            body=raw.get("description"),
            url=raw.get("documentUrl"),
            published=raw.get("publicationDate"),
            categories=[*([document_type] if document_type else []), *subjects],
            metadata={"document_type": document_type or None, "members": members},
        )

    def _describe_impact(
        self,
        level: ImpactLevel,
        categories: tuple[str, ...],
        raw: dict[str, Any],
    ) -> str:
        document_type = self._clean_text(raw.get("type")).lower() or "document"
        members = self._string_list(raw.get("members"))
        if members:
            return f"This {document_type} may affect trade between {', '.join(members)}."
        return f"This {document_type} may have a {level} impact on international trade."
