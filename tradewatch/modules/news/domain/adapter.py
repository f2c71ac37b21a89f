"""Source adapter domain interface."""

from abc import ABC, abstractmethod
from datetime import datetime

from tradewatch.modules.news.domain.entities import NormalizedItem


class SourceAdapter(ABC):
    """统一的来源抓取接口。

    实现必须自行捕获并记录错误，失败时返回空列表，
    不允许单个来源的失败中断调用方。
    """

    source_id: str
    source_name: str

    @abstractmethod
    async def get_latest(self, limit: int) -> list[NormalizedItem]: ...

    @abstractmethod
    async def search(self, query: str, limit: int) -> list[NormalizedItem]: ...

    @abstractmethod
    async def get_by_date_range(
        self,
        start: datetime,
        end: datetime,
        limit: int,
    ) -> list[NormalizedItem]: ...

    async def aclose(self) -> None:
        """释放适配器持有的资源。"""
