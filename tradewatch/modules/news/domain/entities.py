"""News domain entities."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from tradewatch.modules.news.domain.adapter import SourceAdapter


class SourceType(StrEnum):
    """上游来源类型。"""

    GOVERNMENT = "government"
    NEWS = "news"
    SOCIAL = "social"


class ImpactLevel(StrEnum):
    """影响等级。"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ImpactAnnotation(BaseModel):
    """基于关键词分类法计算出的影响标注。"""

    model_config = ConfigDict(frozen=True)

    level: ImpactLevel = Field(..., description="影响等级")
    description: str = Field(..., description="影响说明")


class NormalizedItem(BaseModel):
    """与来源无关的标准化新闻条目。

    由 Source Adapter 创建，创建后不再修改；合并时复制而非原地修改。
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="稳定标识（source_id:上游ID）")
    source_id: str = Field(..., description="来源标识")
    source: str = Field(..., description="来源名称")
    title: str = Field(..., description="标题")
    body: str = Field(default="", description="正文")
    url: str | None = Field(default=None, description="原文URL")
    published_at: datetime | None = Field(default=None, description="发布时间")
    categories: tuple[str, ...] = Field(default=(), description="分类标签（保持来源顺序）")
    impact: ImpactAnnotation | None = Field(default=None, description="影响标注")
    metadata: dict[str, Any] = Field(default_factory=dict, description="来源附加数据")

    def has_category(self, category: str) -> bool:
        """大小写不敏感地判断是否带有某分类。"""
        wanted = category.strip().lower()
        return any(tag.lower() == wanted for tag in self.categories)


@dataclass
class SourceDescriptor:
    """聚合器中的一个来源。

    weight 取值 0-1，启用来源的权重之和不必为 1（分配配额时归一化）。
    enabled 只能通过聚合器的显式启用/禁用调用修改。
    """

    adapter: SourceAdapter
    weight: float
    enabled: bool = True

    def __post_init__(self) -> None:
        if not 0 <= self.weight <= 1:
            raise ValueError(f"Source weight must be within [0, 1], got {self.weight}")

    @property
    def source_id(self) -> str:
        return self.adapter.source_id
