"""Tests for the impact keyword taxonomy."""

from tradewatch.modules.news.domain.entities import ImpactLevel
from tradewatch.modules.news.domain.impact import (
    analyze_impact_level,
    dedupe_categories,
    extract_categories,
    is_tariff_related,
    matched_regions,
    matched_sectors,
    sector_phrase,
)


class TestTariffRelevance:
    def test_keyword_in_title_or_body(self) -> None:
        assert is_tariff_related("New tariffs announced", "")
        assert is_tariff_related("Ministers meet", "Talks on the trade agreement stalled")
        assert is_tariff_related("Panel ruling", "", ["WTO"])

    def test_unrelated_text(self) -> None:
        assert not is_tariff_related("Quarterly earnings beat estimates", "Shares rose 3%")

    def test_keywords_match_at_word_start_only(self) -> None:
        assert not is_tariff_related("Antiwto protest", "")


class TestImpactLevel:
    def test_high_beats_medium(self) -> None:
        assert analyze_impact_level("Major tariff hike", "a notable shift") == ImpactLevel.HIGH

    def test_medium(self) -> None:
        assert analyze_impact_level("Tariff update", "Considerable uncertainty") == ImpactLevel.MEDIUM

    def test_default_low(self) -> None:
        assert analyze_impact_level("Tariff update", "Officials commented") == ImpactLevel.LOW

    def test_deterministic(self) -> None:
        title, body = "Significant steel tariff", "Europe and Asia respond"
        results = {analyze_impact_level(title, body) for _ in range(5)}
        assert results == {ImpactLevel.HIGH}


class TestCategories:
    def test_extract_adds_source_type_tariffs_and_sectors(self) -> None:
        categories = extract_categories(
            "Steel tariff raised",
            "Automotive makers and energy firms react",
            "news",
        )
        assert categories == ["news", "tariffs", "automotive", "energy", "steel"]

    def test_extract_without_tariff_keywords(self) -> None:
        assert extract_categories("Chip demand", "technology rally", "government") == [
            "government",
            "technology",
        ]

    def test_dedupe_is_case_insensitive_and_keeps_first_spelling(self) -> None:
        assert dedupe_categories(["Markets", "markets", " Steel ", "", "steel", "Asia"]) == (
            "Markets",
            "Steel",
            "Asia",
        )

    def test_sector_and_region_matching(self) -> None:
        tags = ("TRADE", "Steel", "europe", "tariffs", "energy")
        assert matched_sectors(tags) == ["Steel", "energy"]
        assert matched_regions(tags) == ["europe"]
        assert sector_phrase(["steel"]) == "the steel sector"
        assert sector_phrase(["steel", "energy"]) == "the steel, energy sectors"
