# src/hybrid_search/backend/api/schemas_http/search.py

"""
[职责] Search HTTP 契约：product / legal 两个语料的请求体、扁平化结果项与响应体，以及 legal 统计视图。
[边界] 仅描述 HTTP 结构与请求 -> SearchRequest 的映射；语义校验（空 query、top_k、字段）由 orchestrator 负责。
[上游关系] api/routers/search.py 接收请求体。
[下游关系] 路由将 SearchResponse 映射为本模块响应模型。
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from hybrid_search.backend.pipelines.search.types import Origin, SearchMode
from hybrid_search.backend.schemas.search import SearchRequest, SearchResponse, SearchResultItem


class _SearchRequestBase(BaseModel):
    model_config = ConfigDict(extra="forbid")  # docstring: 未知字段直接拒绝（400 bad_request）

    query: str = Field(default="", max_length=4096)  # docstring: 查询文本（缺失/空白 -> search.invalid_query）
    top_k: Optional[int] = Field(default=None)  # docstring: 返回条数（默认 10，上限 100）
    search_field: Optional[str] = Field(default=None)  # docstring: content/title[/headnotes] 或遗留 "hybrid"
    similarity_threshold: Optional[float] = Field(default=None)  # docstring: 相似度下限 [0,1]
    mode: Optional[SearchMode] = Field(default=None)  # docstring: semantic/hybrid/keyword


class ProductSearchRequest(_SearchRequestBase):
    """POST /api/search body."""

    category: Optional[str] = Field(default=None)  # docstring: 类目等值过滤

    def to_domain(self) -> SearchRequest:
        return SearchRequest(
            query=self.query,
            top_k=self.top_k,
            search_field=self.search_field,
            similarity_threshold=self.similarity_threshold,
            filters={"category": self.category},
            mode=self.mode,
        )


class LegalSearchRequest(_SearchRequestBase):
    """
    [职责] POST /api/legal/search 请求体。
    [边界] status_filter="exclude_overruled" 为排除过滤；其余取值由 status_filter_policy 决定。
    [上游关系] 客户端。
    [下游关系] to_domain() -> SearchRequest。
    """

    jurisdiction: Optional[str] = Field(default=None)
    doc_type: Optional[str] = Field(default=None)
    practice_area: Optional[str] = Field(default=None)
    status_filter: Optional[str] = Field(default=None)

    def to_domain(self) -> SearchRequest:
        return SearchRequest(
            query=self.query,
            top_k=self.top_k,
            search_field=self.search_field,
            similarity_threshold=self.similarity_threshold,
            filters={
                "jurisdiction": self.jurisdiction,
                "doc_type": self.doc_type,
                "practice_area": self.practice_area,
                "status_filter": self.status_filter,
            },
            mode=self.mode,
        )


class _SearchResultBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int = Field(...)  # docstring: 文档整数主键
    similarity: float = Field(..., ge=0.0, le=1.0)  # docstring: [0,1] 相似度
    search_method: Origin = Field(...)  # docstring: semantic/keyword/hybrid
    score: float = Field(...)  # docstring: 排序分数
    semantic_rank: Optional[int] = Field(default=None)
    keyword_rank: Optional[int] = Field(default=None)


class ProductSearchResult(_SearchResultBase):
    title: Optional[str] = Field(default=None)
    description: Optional[str] = Field(default=None)
    category: Optional[str] = Field(default=None)
    tags: List[str] = Field(default_factory=list)
    raw_data: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_item(cls, item: SearchResultItem) -> "ProductSearchResult":
        meta = item.metadata
        return cls(
            **_rank_fields(item),
            title=meta.get("title"),
            description=meta.get("description"),
            category=meta.get("category"),
            tags=[str(t) for t in meta.get("tags") or []],
            raw_data=dict(meta.get("raw_data") or {}),
        )


class LegalSearchResult(_SearchResultBase):
    doc_id: Optional[str] = Field(default=None)
    doc_type: Optional[str] = Field(default=None)
    title: Optional[str] = Field(default=None)
    citation: Optional[str] = Field(default=None)
    jurisdiction: Optional[str] = Field(default=None)
    court: Optional[str] = Field(default=None)
    practice_area: Optional[str] = Field(default=None)
    status: Optional[str] = Field(default=None)
    content_snippet: Optional[str] = Field(default=None)  # docstring: content 前 300 字符

    @classmethod
    def from_item(cls, item: SearchResultItem) -> "LegalSearchResult":
        meta = item.metadata
        return cls(
            **_rank_fields(item),
            doc_id=meta.get("doc_id"),
            doc_type=meta.get("doc_type"),
            title=meta.get("title"),
            citation=meta.get("citation"),
            jurisdiction=meta.get("jurisdiction"),
            court=meta.get("court"),
            practice_area=meta.get("practice_area"),
            status=meta.get("status"),
            content_snippet=meta.get("content"),
        )


def _rank_fields(item: SearchResultItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "similarity": item.similarity,
        "search_method": item.search_method,
        "score": item.score,
        "semantic_rank": item.semantic_rank,
        "keyword_rank": item.keyword_rank,
    }


class _SearchResponseBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    query: str = Field(...)
    search_field: str = Field(...)
    search_method: SearchMode = Field(...)
    total_results: int = Field(..., ge=0)
    latency_ms: int = Field(..., ge=0)
    timing_ms: Dict[str, float] = Field(default_factory=dict)


class ProductSearchResponse(_SearchResponseBase):
    results: List[ProductSearchResult] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, resp: SearchResponse) -> "ProductSearchResponse":
        return cls(
            **_echo_fields(resp),
            results=[ProductSearchResult.from_item(item) for item in resp.results],
        )


class LegalSearchResponse(_SearchResponseBase):
    results: List[LegalSearchResult] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, resp: SearchResponse) -> "LegalSearchResponse":
        return cls(
            **_echo_fields(resp),
            results=[LegalSearchResult.from_item(item) for item in resp.results],
        )


def _echo_fields(resp: SearchResponse) -> Dict[str, Any]:
    return {
        "query": resp.query,
        "search_field": resp.search_field,
        "search_method": resp.search_method,
        "total_results": resp.total_results,
        "latency_ms": resp.latency_ms,
        "timing_ms": resp.timing_ms,
    }


class LegalStatsResponse(BaseModel):
    """GET /api/legal/stats"""

    model_config = ConfigDict(extra="forbid")

    indexed_documents: int = Field(..., ge=0)
    by_document_type: Dict[str, int] = Field(default_factory=dict)
    by_jurisdiction: Dict[str, int] = Field(default_factory=dict)
    by_practice_area: Dict[str, int] = Field(default_factory=dict)
    by_status: Dict[str, int] = Field(default_factory=dict)


class DimensionStatsResponse(BaseModel):
    """GET /api/{corpus}/stats/{dimension}"""

    model_config = ConfigDict(extra="forbid")

    corpus: str = Field(...)
    dimension: str = Field(...)
    counts: Dict[str, int] = Field(default_factory=dict)  # docstring: 按 count DESC、value ASC 排序
