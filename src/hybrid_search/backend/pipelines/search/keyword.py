# src/hybrid_search/backend/pipelines/search/keyword.py

"""
[职责] keyword recall：基于 SQLite FTS5/BM25 召回词法相关文档，产出带名次的 RankedHit 列表。
[边界] 仅返回匹配文档（不匹配即缺席，不记 0 分）；不做向量召回/融合。
[上游关系] orchestrator 传入 query 文本 / 谓词 / limit；依赖 db/fts.search_fts。
[下游关系] fusion.fuse 或 keyword-only 透传消费 RankedHit。
"""

from __future__ import annotations

import re
from typing import List, Literal, Protocol, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hybrid_search.backend.db.fts import KeywordHit, search_fts
from hybrid_search.backend.pipelines.search.corpus import CorpusSpec
from hybrid_search.backend.pipelines.search.filters import Predicate, to_sqlalchemy
from hybrid_search.backend.pipelines.search.types import Origin, RankedHit
from hybrid_search.backend.utils.errors import RetrieverUnavailableError


MatchMode = Literal["and", "or"]  # docstring: token 组合方式


class KeywordRetriever(Protocol):
    async def search(
        self,
        *,
        text: str,
        predicates: Tuple[Predicate, ...],
        limit: int,
    ) -> List[RankedHit]: ...


def normalize_query(query: str) -> str:
    """Collapse whitespace; no semantic rewriting."""
    return " ".join(str(query or "").strip().split())


def tokenize_query(query: str) -> List[str]:
    """
    [职责] 将 query 拆分为 FTS 友好 token 列表。
    [边界] 仅提取 Unicode 词元（\\w+）；标点/符号（例如 "§"、"."）被丢弃。
    [上游关系] FtsKeywordRetriever.search 调用。
    [下游关系] build_match_query。
    """
    return [t for t in re.findall(r"\w+", query, flags=re.UNICODE) if t.strip()]


def build_match_query(tokens: Sequence[str], *, mode: MatchMode = "and") -> str:
    """
    [职责] 构造 FTS5 MATCH 表达式：每个 token 加双引号（作为字面短语），默认隐式 AND。
    [边界] 不注入 NEAR/前缀/列过滤等高级语法；token 内不含引号（\\w+ 保证）。
    [上游关系] FtsKeywordRetriever.search 调用。
    [下游关系] db/fts.search_fts 的 match_query 参数。
    """
    quoted = [f'"{t}"' for t in tokens if t]
    if not quoted:
        return ""
    sep = " OR " if mode == "or" else " "
    return sep.join(quoted)


def bm25_to_score(bm25: float) -> float:
    """FTS5 bm25 is smaller-is-better (usually negative); flip it to a non-negative larger-is-better score."""
    return max(0.0, -float(bm25))


def rank_keyword_hits(hits: Sequence[KeywordHit], *, limit: int) -> List[Tuple[int, float, KeywordHit]]:
    """
    [职责] 词法分数确定性排序：score DESC，doc_id ASC；截断到 limit。
    [边界] 同一 doc_id 只保留首次出现。
    [上游关系] FtsKeywordRetriever.search 调用。
    [下游关系] 组装 RankedHit（rank 从 1 开始）。
    """
    seen = set()
    scored: List[Tuple[int, float, KeywordHit]] = []
    for hit in hits:
        if hit.doc_id in seen:
            continue
        seen.add(hit.doc_id)
        scored.append((int(hit.doc_id), bm25_to_score(hit.bm25), hit))
    scored.sort(key=lambda item: (-item[1], item[0]))
    return scored[: max(0, int(limit))]


class FtsKeywordRetriever:
    """
    [职责] 基于语料 FTS5 虚表的关键词召回。
    [边界] 每次调用独立打开 session；SQLAlchemy 异常（含缺表）统一转换为 RetrieverUnavailableError。
    [上游关系] services/search_service.py 按语料装配。
    [下游关系] SearchOrchestrator 调用 search()。
    """

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        corpus: CorpusSpec,
        mode: MatchMode = "and",
    ) -> None:
        self._session_factory = session_factory
        self._corpus = corpus
        self._mode: MatchMode = mode

    async def search(
        self,
        *,
        text: str,
        predicates: Tuple[Predicate, ...],
        limit: int,
    ) -> List[RankedHit]:
        """
        [职责] 执行关键词召回：归一化 -> 分词 -> MATCH -> 过滤 -> 排序 -> 赋名次。
        [边界] 无有效 token 或 limit<=0 直接返回空列表。
        [上游关系] orchestrator（hybrid/keyword 模式）。
        [下游关系] RankedHit 列表（origin=keyword）。
        """
        normalized = normalize_query(text)
        if not normalized or int(limit) <= 0:
            return []
        match_query = build_match_query(tokenize_query(normalized), mode=self._mode)
        if not match_query:
            return []

        model = self._corpus.model
        clauses = to_sqlalchemy(self._corpus.base_predicates + tuple(predicates), model)

        try:
            async with self._session_factory() as session:
                hits = await search_fts(
                    session,
                    index=self._corpus.fts,
                    model=model,
                    match_query=match_query,
                    limit=int(limit),
                    where=clauses,
                )
        except SQLAlchemyError as exc:
            raise RetrieverUnavailableError(
                message="keyword retrieval failed",
                detail={"corpus": self._corpus.name, "fts_table": self._corpus.fts.fts_table},
                cause=exc,
            ) from exc

        return [
            RankedHit(
                doc_id=doc_id,
                score=score,
                rank=i,
                origin=Origin.KEYWORD,
                meta=self._corpus.to_meta(hit.row),
            )
            for i, (doc_id, score, hit) in enumerate(rank_keyword_hits(hits, limit=limit), start=1)
        ]
