# src/hybrid_search/backend/schemas/search.py

"""
[职责] Search 契约层：定义检索请求/响应的结构化模型，作为 orchestrator 与 services/api 之间的稳定边界。
[边界] 不包含检索实现；不依赖 ORM；请求字段的语义校验（空 query、top_k 范围、字段支持）由 orchestrator 负责。
[上游关系] api/schemas_http/search.py 将 HTTP 请求转换为 SearchRequest。
[下游关系] SearchOrchestrator.execute 产出 SearchResponse；api 层映射为 HTTP 响应。
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from hybrid_search.backend.pipelines.search.types import Origin, SearchMode


class SearchRequest(BaseModel):
    """
    [职责] SearchRequest：单次检索请求（构造后不可变）。
    [边界] None 表示“使用配置默认值”；search_field 保留原始字符串以支持遗留取值 "hybrid"。
    [上游关系] HTTP 请求体或测试直接构造。
    [下游关系] SearchOrchestrator.resolve 归一化为 ResolvedQuery。
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    query: str = Field(default="")  # docstring: 查询文本（空白由 orchestrator 拒绝）
    top_k: Optional[int] = Field(default=None)  # docstring: 返回条数（None=默认；超上限截断）
    search_field: Optional[str] = Field(default=None)  # docstring: 向量字段或遗留取值 "hybrid"
    similarity_threshold: Optional[float] = Field(default=None)  # docstring: 相似度下限 [0,1]
    filters: Dict[str, Optional[str]] = Field(default_factory=dict)  # docstring: 过滤名 -> 取值（空白忽略）
    mode: Optional[SearchMode] = Field(default=None)  # docstring: 检索模式（None=semantic，遗留 "hybrid" 字段除外）


class SearchResultItem(BaseModel):
    """Single ranked result; metadata is corpus-specific display data."""

    model_config = ConfigDict(extra="forbid")

    id: int = Field(...)  # docstring: 文档整数主键
    similarity: float = Field(..., ge=0.0, le=1.0)  # docstring: [0,1] 相似度（仅 keyword 命中为 0）
    search_method: Origin = Field(...)  # docstring: 命中来源标签
    score: float = Field(...)  # docstring: 排序分数（RRF / 相似度 / 词法分数）
    semantic_rank: Optional[int] = Field(default=None)
    keyword_rank: Optional[int] = Field(default=None)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SearchResponse(BaseModel):
    """
    [职责] SearchResponse：回显 query/字段/模式 + 有序结果 + 耗时。
    [边界] results 已截断到 top_k；失败时不产生部分响应（由异常表达）。
    [上游关系] SearchOrchestrator 组装。
    [下游关系] api 层扁平化为语料专属 HTTP 响应。
    """

    model_config = ConfigDict(extra="forbid")

    query: str = Field(...)
    search_field: str = Field(...)  # docstring: 回显字段（遗留请求回显 "hybrid"）
    search_method: SearchMode = Field(...)  # docstring: 实际使用的检索模式
    total_results: int = Field(..., ge=0)
    results: List[SearchResultItem] = Field(default_factory=list)
    latency_ms: int = Field(..., ge=0)  # docstring: 受理到组装的整数毫秒
    timing_ms: Dict[str, float] = Field(default_factory=dict)  # docstring: 各阶段耗时（embed/vector/keyword/fusion/total）
