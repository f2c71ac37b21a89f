"""Tests for news source adapters."""

from datetime import UTC, datetime
from typing import Any
from unittest.mock import patch

import httpx
import pytest

from tradewatch.core.config import Settings
from tradewatch.core.infrastructure.http import ClientConfig, TransportClient
from tradewatch.modules.news.domain.entities import ImpactLevel
from tradewatch.modules.news.infrastructure.adapters import (
    BloombergAdapter,
    ReutersAdapter,
    WtoAdapter,
    build_news_sources,
)

pytestmark = pytest.mark.anyio


def _transport(payload: Any, status: int = 200, requests: list | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        return httpx.Response(status, json=payload)

    return httpx.MockTransport(handler)


def _client(transport: httpx.MockTransport, base_url: str = "https://upstream.test") -> TransportClient:
    return TransportClient(ClientConfig(base_url=base_url), transport=transport)


REUTERS_PAYLOAD = {
    "articles": [
        {
            "id": "r1",
            "headline": "<b>Major</b> tariff on steel",
            "body": "The  new duty\nhits Europe.",
            "dateTime": "2024-03-14T10:00:00Z",
            "url": "https://reuters.test/r1",
            "authors": ["Jane Doe"],
            "channels": ["business", "Business"],
            "tags": ["trade"],
            "images": [{"url": "https://img.test/1.png"}],
        },
        {
            "id": "r2",
            "headline": "Quarterly earnings",
            "body": "Shares rose",
            "dateTime": None,
            "url": None,
        },
        {"id": "r3", "headline": ""},
        "not-a-record",
    ]
}


class TestReutersAdapter:
    async def test_get_latest_normalizes_articles(self) -> None:
        requests: list[httpx.Request] = []
        adapter = ReutersAdapter(_client(_transport(REUTERS_PAYLOAD, requests=requests)))

        items = await adapter.get_latest(5)

        assert requests[0].url.path == "/news/v1/latest"
        assert dict(requests[0].url.params) == {
            "limit": "5",
            "channel": "business,economy,markets",
        }
        assert [i.id for i in items] == ["reuters:r1", "reuters:r2"]

        first = items[0]
        assert first.title == "Major tariff on steel"
        assert first.body == "The new duty hits Europe."
        assert first.source == "Reuters"
        assert first.published_at == datetime(2024, 3, 14, 10, 0, tzinfo=UTC)
        assert first.categories == ("business", "trade", "news", "tariffs", "steel")
        assert first.impact is not None
        assert first.impact.level == ImpactLevel.HIGH
        assert first.impact.description == "This news may have a high impact on the steel sector."
        assert first.metadata["authors"] == ["Jane Doe"]

        second = items[1]
        assert second.published_at is None
        assert second.url is None
        assert second.impact is None
        assert second.categories == ("news",)

    async def test_results_are_capped_to_limit(self) -> None:
        adapter = ReutersAdapter(_client(_transport(REUTERS_PAYLOAD)))
        assert len(await adapter.get_latest(1)) == 1

    async def test_zero_limit_skips_request(self) -> None:
        requests: list[httpx.Request] = []
        adapter = ReutersAdapter(_client(_transport(REUTERS_PAYLOAD, requests=requests)))

        assert await adapter.get_latest(0) == []
        assert requests == []

    async def test_search_and_date_range_parameters(self) -> None:
        requests: list[httpx.Request] = []
        adapter = ReutersAdapter(_client(_transport({"articles": []}, requests=requests)))

        await adapter.search("steel tariffs", 3)
        await adapter.get_by_date_range(
            datetime(2024, 3, 1, tzinfo=UTC),
            datetime(2024, 3, 8, 12, 30, tzinfo=UTC),
            4,
        )

        assert requests[0].url.path == "/news/v1/search"
        assert requests[0].url.params["q"] == "steel tariffs"
        assert requests[0].url.params["sortBy"] == "relevance"
        assert requests[1].url.params["from"] == "2024-03-01T00:00:00.000Z"
        assert requests[1].url.params["to"] == "2024-03-08T12:30:00.000Z"
        assert requests[1].url.params["sortBy"] == "date"

    async def test_upstream_failure_returns_empty(self) -> None:
        adapter = ReutersAdapter(_client(_transport({"error": "down"}, status=503)))

        with patch(
            "tradewatch.modules.news.infrastructure.adapters.base.BusinessEvents"
        ) as events:
            assert await adapter.get_latest(5) == []

        events.source_fetch_failed.assert_called_once()
        assert events.source_fetch_failed.call_args.kwargs["source_id"] == "reuters"

    async def test_unexpected_payload_shape_returns_empty(self) -> None:
        adapter = ReutersAdapter(_client(_transport([1, 2, 3])))
        assert await adapter.search("x", 5) == []

    async def test_channel_and_tag_queries(self) -> None:
        requests: list[httpx.Request] = []
        adapter = ReutersAdapter(_client(_transport(REUTERS_PAYLOAD, requests=requests)))

        assert len(await adapter.get_by_channel("markets", 5)) == 2
        assert len(await adapter.get_by_tag("trade", 5)) == 2
        assert requests[0].url.params["channel"] == "markets"
        assert requests[1].url.params["tag"] == "trade"


WTO_PAYLOAD = [
    {
        "title": "Panel report on tariff measures",
        "description": "Notable findings on import duty practices",
        "publicationDate": "2024-03-10",
        "documentUrl": "https://wto.test/docs/ds123",
        "type": "Dispute",
        "members": ["United States", "China"],
        "subjects": ["Agriculture", "agriculture"],
    },
    {
        "title": "Ministerial conference schedule",
        "description": "",
        "publicationDate": 1710000000000,
        "documentUrl": "https://wto.test/docs/mc13",
        "type": "News",
        "members": [],
        "subjects": [],
    },
]


class TestWtoAdapter:
    async def test_get_latest_normalizes_documents(self) -> None:
        requests: list[httpx.Request] = []
        adapter = WtoAdapter(_client(_transport(WTO_PAYLOAD, requests=requests)))

        items = await adapter.get_latest(10)

        assert requests[0].url.path == "/news"
        assert requests[0].url.params["sort"] == "publicationDate:desc"
        assert len(items) == 2

        dispute = items[0]
        assert dispute.id.startswith("wto:")
        assert dispute.source == "World Trade Organization"
        assert dispute.published_at == datetime(2024, 3, 10, tzinfo=UTC)
        assert dispute.categories == ("Dispute", "Agriculture", "government", "tariffs")
        assert dispute.impact is not None
        assert dispute.impact.level == ImpactLevel.MEDIUM
        assert dispute.impact.description == (
            "This dispute may affect trade between United States, China."
        )
        assert dispute.metadata["members"] == ["United States", "China"]

        news = items[1]
        assert news.published_at == datetime.fromtimestamp(1_710_000_000, tz=UTC)
        assert news.impact is None

    async def test_identifier_is_stable_across_fetches(self) -> None:
        adapter = WtoAdapter(_client(_transport(WTO_PAYLOAD)))

        first = await adapter.get_latest(10)
        second = await adapter.get_latest(10)

        assert [i.id for i in first] == [i.id for i in second]
        assert first[0].id != first[1].id

    async def test_search_and_member_queries(self) -> None:
        requests: list[httpx.Request] = []
        adapter = WtoAdapter(_client(_transport([], requests=requests)))

        await adapter.search("anti-dumping", 5)
        await adapter.get_by_member("China", 5)
        await adapter.get_by_subject("Agriculture", 5)

        assert requests[0].url.path == "/news/search"
        assert requests[0].url.params["q"] == "anti-dumping"
        assert requests[1].url.params["member"] == "China"
        assert requests[2].url.params["subject"] == "Agriculture"

    async def test_network_failure_returns_empty(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        adapter = WtoAdapter(_client(httpx.MockTransport(handler)))

        assert await adapter.get_by_date_range(
            datetime(2024, 1, 1, tzinfo=UTC), datetime(2024, 2, 1, tzinfo=UTC), 5
        ) == []


BLOOMBERG_PAYLOAD = {
    "stories": [
        {
            "storyId": "b-1",
            "title": "Substantial tariff response",
            "summary": "Short summary",
            "text": "Officials in Asia weigh steel measures",
            "publishedAt": "2024-03-12T08:15:00+00:00",
            "webUrl": "https://bloomberg.test/b-1",
            "byline": "Reporter",
            "topics": ["TRADE"],
            "industries": ["Steel"],
            "regions": ["Asia"],
            "markets": [],
            "multimedia": [],
        }
    ]
}


class TestBloombergAdapter:
    async def test_get_latest_normalizes_stories(self) -> None:
        requests: list[httpx.Request] = []
        adapter = BloombergAdapter(_client(_transport(BLOOMBERG_PAYLOAD, requests=requests)))

        items = await adapter.get_latest(3)

        assert requests[0].url.path == "/stories/latest"
        assert requests[0].url.params["topics"] == "TRADE,ECONOMY,MARKETS"
        assert requests[0].url.params["template"] == "FULL"

        (story,) = items
        assert story.id == "bloomberg:b-1"
        assert story.body == "Officials in Asia weigh steel measures"
        assert story.categories == ("TRADE", "Steel", "Asia", "news", "tariffs")
        assert story.impact is not None
        assert story.impact.level == ImpactLevel.HIGH
        assert story.impact.description == (
            "This news may have a high impact in Asia on the Steel sector."
        )
        assert story.metadata["summary"] == "Short summary"

    async def test_date_range_uses_combined_parameter(self) -> None:
        requests: list[httpx.Request] = []
        adapter = BloombergAdapter(_client(_transport({"stories": []}, requests=requests)))

        await adapter.get_by_date_range(
            datetime(2024, 3, 1, tzinfo=UTC), datetime(2024, 3, 2, tzinfo=UTC), 5
        )

        assert requests[0].url.path == "/stories/search"
        assert requests[0].url.params["dateRange"] == (
            "2024-03-01T00:00:00.000Z/2024-03-02T00:00:00.000Z"
        )

    async def test_filtered_queries(self) -> None:
        requests: list[httpx.Request] = []
        adapter = BloombergAdapter(_client(_transport(BLOOMBERG_PAYLOAD, requests=requests)))

        await adapter.get_by_industry("Steel", 2)
        await adapter.get_by_region("Asia", 2)
        await adapter.get_by_market("Commodities", 2)

        assert requests[0].url.params["industries"] == "Steel"
        assert requests[1].url.params["regions"] == "Asia"
        assert requests[2].url.params["markets"] == "Commodities"

    async def test_unauthorized_returns_empty(self) -> None:
        adapter = BloombergAdapter(_client(_transport({"error": "no"}, status=401)))
        assert await adapter.get_latest(3) == []


class TestFactory:
    async def test_builds_descriptors_from_settings(self) -> None:
        requests: list[httpx.Request] = []
        config = Settings(
            _env_file=None,
            REUTERS_API_KEY="reuters-key",
            BLOOMBERG_API_KEY="bbg-key",
            BLOOMBERG_SECRET_KEY="bbg-secret",
            WTO_ENABLED=False,
            HTTP_MAX_RETRIES=0,
        )

        descriptors = build_news_sources(
            config,
            transport=_transport({"articles": [], "stories": []}, requests=requests),
        )

        assert [d.source_id for d in descriptors] == ["reuters", "wto", "bloomberg"]
        assert [d.weight for d in descriptors] == [0.4, 0.3, 0.3]
        assert [d.enabled for d in descriptors] == [True, False, True]

        await descriptors[0].adapter.get_latest(1)
        await descriptors[2].adapter.get_latest(1)

        assert str(requests[0].url).startswith(config.REUTERS_BASE_URL)
        assert requests[0].headers["Authorization"] == "Bearer reuters-key"
        assert requests[1].headers["Authorization"] == "Bearer bbg-key"
        assert requests[1].headers["X-BAPI-SECRET"] == "bbg-secret"

        for descriptor in descriptors:
            await descriptor.adapter.aclose()
