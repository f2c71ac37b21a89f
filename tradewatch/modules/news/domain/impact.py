"""Keyword taxonomy for tariff relevance, impact level and category tagging.

All functions are pure: identical input text always yields identical output.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from functools import cache

from tradewatch.modules.news.domain.entities import ImpactLevel

TARIFF_KEYWORDS: tuple[str, ...] = (
    "tariff",
    "trade war",
    "import duty",
    "export duty",
    "customs duty",
    "trade policy",
    "trade restriction",
    "trade barrier",
    "trade regulation",
    "import tax",
    "export tax",
    "trade agreement",
    "trade dispute",
    "wto",
    "world trade organization",
)

HIGH_IMPACT_KEYWORDS: tuple[str, ...] = ("major", "significant", "substantial", "dramatic")
MEDIUM_IMPACT_KEYWORDS: tuple[str, ...] = ("moderate", "notable", "considerable")

SECTORS: tuple[str, ...] = (
    "agriculture",
    "automotive",
    "electronics",
    "energy",
    "manufacturing",
    "technology",
    "textiles",
    "steel",
    "aluminum",
)

REGIONS: tuple[str, ...] = ("asia", "europe", "americas", "africa", "oceania")

TARIFF_CATEGORY = "tariffs"


@cache
def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    # 仅约束词首边界，使 "tariff" 同时匹配 "tariffs"
    return re.compile(r"\b" + re.escape(keyword.lower()))


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(_keyword_pattern(k).search(text) for k in keywords)


def _normalize(*parts: str) -> str:
    return " ".join(p for p in parts if p).lower()


def is_tariff_related(title: str, body: str, categories: Iterable[str] = ()) -> bool:
    """判断内容是否与关税/贸易政策相关。"""
    return _contains_any(_normalize(title, body, *categories), TARIFF_KEYWORDS)


def analyze_impact_level(title: str, body: str) -> ImpactLevel:
    text = _normalize(title, body)
    if _contains_any(text, HIGH_IMPACT_KEYWORDS):
        return ImpactLevel.HIGH
    if _contains_any(text, MEDIUM_IMPACT_KEYWORDS):
        return ImpactLevel.MEDIUM
    return ImpactLevel.LOW


def extract_categories(
    title: str,
    body: str,
    source_type: str,
    categories: Iterable[str] = (),
) -> list[str]:
    """派生分类：来源类型、关税（若相关）、命中的行业。"""
    existing = list(categories)
    derived = [source_type]
    if is_tariff_related(title, body, existing):
        derived.append(TARIFF_CATEGORY)
    text = _normalize(title, body)
    derived.extend(sector for sector in SECTORS if _keyword_pattern(sector).search(text))
    return derived


def dedupe_categories(categories: Iterable[str]) -> tuple[str, ...]:
    """去重（大小写不敏感），保留首次出现的写法与顺序，丢弃空标签。"""
    seen: set[str] = set()
    result: list[str] = []
    for category in categories:
        if not isinstance(category, str):
            continue
        tag = " ".join(category.split())
        if not tag or tag.lower() in seen:
            continue
        seen.add(tag.lower())
        result.append(tag)
    return tuple(result)


def matched_sectors(categories: Iterable[str]) -> list[str]:
    return [c for c in categories if c.lower() in SECTORS]


def matched_regions(categories: Iterable[str]) -> list[str]:
    return [c for c in categories if c.lower() in REGIONS]


def sector_phrase(sectors: list[str]) -> str:
    """"the steel, energy sectors" 形式的短语。"""
    suffix = "s" if len(sectors) > 1 else ""
    return f"the {', '.join(sectors)} sector{suffix}"
