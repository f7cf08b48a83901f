# src/hybrid_search/backend/pipelines/search/types.py
"""
[职责] Search types：检索各阶段共享的闭合枚举与命中结构（无 DB/外部依赖）。
[边界] 仅定义数据结构；不包含检索逻辑。
[上游关系] vector/keyword/fusion/pipeline/filters 与 config 引用。
[下游关系] services/api 将 FusedHit 映射为 HTTP 结果。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class SearchField(str, Enum):
    """向量检索目标字段（闭合枚举）。"""

    CONTENT = "content"
    TITLE = "title"
    HEADNOTES = "headnotes"

    @classmethod
    def parse(cls, value: Any) -> "SearchField":
        raw = str(value or "").strip().lower()
        for item in cls:
            if item.value == raw:
                return item
        raise ValueError(f"unknown search field: {value!r}")


class SearchMode(str, Enum):
    """
    [职责] 检索模式：semantic（单字段向量）/ hybrid（向量+关键词 RRF）/ keyword（纯关键词）。
    [边界] 新增模式必须同步更新 orchestrator 的分发表。
    """

    SEMANTIC = "semantic"
    HYBRID = "hybrid"
    KEYWORD = "keyword"

    @property
    def needs_embedding(self) -> bool:
        return self is not SearchMode.KEYWORD


class Origin(str, Enum):
    """命中来源标签。"""

    SEMANTIC = "semantic"
    KEYWORD = "keyword"
    HYBRID = "hybrid"


class StatusFilterPolicy(str, Enum):
    """
    [职责] status 过滤取值策略。
    [边界] equality_fallback：非 exclude_overruled 的取值按等值过滤；
           exclusion_only：仅接受 exclude_overruled，其他取值视为非法查询。
    """

    EQUALITY_FALLBACK = "equality_fallback"
    EXCLUSION_ONLY = "exclusion_only"


@dataclass(frozen=True)
class RankedHit:
    """
    [职责] 单路召回命中：doc_id + 原始分数 + 名次（从 1 开始）+ 来源。
    [边界] semantic 分数为 [0,1] 相似度；keyword 分数为非负词法相关度。
    [上游关系] VectorRetriever / KeywordRetriever 产出。
    [下游关系] RankFusion 消费。
    """

    doc_id: int
    score: float
    rank: int
    origin: Origin
    meta: Dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class FusedHit:
    """
    [职责] 融合后命中：融合分数、来源标签、展示相似度与各路名次。
    [边界] 生命周期仅限单次请求；不落库。
    [上游关系] fusion.fuse / fusion.passthrough 产出。
    [下游关系] SearchResponse.results。
    """

    doc_id: int
    score: float
    origin: Origin
    similarity: float
    semantic_rank: Optional[int] = None
    keyword_rank: Optional[int] = None
    meta: Dict[str, Any] = field(default_factory=dict, compare=False)
