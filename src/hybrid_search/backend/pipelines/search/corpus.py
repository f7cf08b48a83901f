# src/hybrid_search/backend/pipelines/search/corpus.py
"""
[职责] 语料描述：每个语料的 ORM 表、FTS 索引、向量列、过滤词表、统计维度与结果展示字段。
[边界] 纯静态描述；不含 I/O；向量维度由 EmbeddingConfig 提供。
[上游关系] db/models 与 db/fts 定义物理结构。
[下游关系] retrievers / orchestrator / StatsRepo / services 按语料参数化。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from hybrid_search.backend.db.fts import LEGAL_FTS, PRODUCT_FTS, FtsIndex
from hybrid_search.backend.db.models import LegalDocumentModel, ProductRecordModel
from hybrid_search.backend.pipelines.search.filters import Equals, Predicate
from hybrid_search.backend.pipelines.search.types import SearchField
from hybrid_search.backend.utils.constants import (
    ACTIVE_STATUS,
    EXCLUDE_OVERRULED,
    OVERRULED_STATUS,
    SNIPPET_MAX_CHARS,
)


def _snippet(text: Optional[str], max_chars: int = SNIPPET_MAX_CHARS) -> Optional[str]:
    if text is None:
        return None
    s = str(text)
    return s if len(s) <= max_chars else s[:max_chars]


def _product_meta(row: ProductRecordModel) -> Dict[str, Any]:
    return {
        "title": row.title,
        "description": row.description,
        "category": row.category,
        "tags": list(row.tags or []),
        "raw_data": dict(row.raw_data or {}),
        "status": row.status,
    }


def _legal_meta(row: LegalDocumentModel) -> Dict[str, Any]:
    return {
        "doc_id": row.doc_id,
        "doc_type": row.doc_type,
        "title": row.title,
        "citation": row.citation,
        "jurisdiction": row.jurisdiction,
        "court": row.court,
        "practice_area": row.practice_area,
        "status": row.status,
        "content": _snippet(row.content),  # docstring: 仅展示前 300 字符
    }


@dataclass(frozen=True)
class CorpusSpec:
    """
    [职责] 单个语料的检索参数集合。
    [边界] embedding_columns 的 key 即该语料支持的 SearchField；base_predicates 对所有查询强制生效。
    [上游关系] 模块级常量 PRODUCT_CORPUS / LEGAL_CORPUS。
    [下游关系] SearchOrchestrator、SqlVectorRetriever、FtsKeywordRetriever、StatsRepo。
    """

    name: str
    model: Any
    fts: FtsIndex
    embedding_columns: Mapping[SearchField, str]
    filter_columns: Mapping[str, str]
    status_column: Optional[str]
    status_exclusions: Mapping[str, str]
    base_predicates: Tuple[Predicate, ...]
    stats_dimensions: Mapping[str, str]
    to_meta: Callable[[Any], Dict[str, Any]] = field(compare=False)

    @property
    def supported_fields(self) -> Tuple[SearchField, ...]:
        return tuple(self.embedding_columns)

    def supports(self, search_field: SearchField) -> bool:
        return search_field in self.embedding_columns

    def embedding_column(self, search_field: SearchField) -> Any:
        """ORM attribute holding the embedding for `search_field`."""
        return getattr(self.model, self.embedding_columns[search_field])


PRODUCT_CORPUS = CorpusSpec(
    name="product",
    model=ProductRecordModel,
    fts=PRODUCT_FTS,
    embedding_columns={
        SearchField.CONTENT: "content_embedding",
        SearchField.TITLE: "title_embedding",
    },
    filter_columns={"category": "category"},
    status_column=None,
    status_exclusions={},
    base_predicates=(Equals(column="status", value=ACTIVE_STATUS),),  # docstring: 仅检索 active 记录
    stats_dimensions={"category": "category", "status": "status"},
    to_meta=_product_meta,
)

LEGAL_CORPUS = CorpusSpec(
    name="legal",
    model=LegalDocumentModel,
    fts=LEGAL_FTS,
    embedding_columns={
        SearchField.CONTENT: "content_embedding",
        SearchField.TITLE: "title_embedding",
        SearchField.HEADNOTES: "headnote_embedding",
    },
    filter_columns={
        "jurisdiction": "jurisdiction",
        "doc_type": "doc_type",
        "practice_area": "practice_area",
    },
    status_column="status",
    status_exclusions={EXCLUDE_OVERRULED: OVERRULED_STATUS},
    base_predicates=(),
    stats_dimensions={
        "doc_type": "doc_type",
        "jurisdiction": "jurisdiction",
        "practice_area": "practice_area",
        "status": "status",
    },
    to_meta=_legal_meta,
)

CORPORA: Dict[str, CorpusSpec] = {c.name: c for c in (PRODUCT_CORPUS, LEGAL_CORPUS)}
