"""新闻源适配器模块。"""

from tradewatch.modules.news.infrastructure.adapters.base import BaseNewsAdapter
from tradewatch.modules.news.infrastructure.adapters.bloomberg import BloombergAdapter
from tradewatch.modules.news.infrastructure.adapters.factory import build_news_sources
from tradewatch.modules.news.infrastructure.adapters.reuters import ReutersAdapter
from tradewatch.modules.news.infrastructure.adapters.wto import WtoAdapter

__all__ = [
    "BaseNewsAdapter",
    "BloombergAdapter",
    "ReutersAdapter",
    "WtoAdapter",
    "build_news_sources",
]
