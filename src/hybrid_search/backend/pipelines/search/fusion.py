# src/hybrid_search/backend/pipelines/search/fusion.py

"""
[职责] fusion：Reciprocal Rank Fusion 合并 semantic/keyword 两路 RankedHit，并提供单路透传。
[边界] 仅依赖各路 rank；不比较跨路 raw score；确定性排序（fused DESC, doc_id ASC）；不落库。
[上游关系] vector.py / keyword.py 产出 RankedHit；orchestrator 传入 rrf_k 与 limit。
[下游关系] orchestrator 将 FusedHit 组装为 SearchResponse.results。
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from hybrid_search.backend.pipelines.search.types import FusedHit, Origin, RankedHit
from hybrid_search.backend.utils.constants import DEFAULT_RRF_K


def _index_by_doc(hits: Sequence[RankedHit]) -> Dict[int, RankedHit]:
    """
    [职责] doc_id -> RankedHit 映射（同一 doc 多次出现时保留最靠前的 rank）。
    [边界] 不重新计算 rank；信任召回阶段赋予的名次。
    [上游关系] fuse 调用。
    [下游关系] 融合分数计算。
    """
    out: Dict[int, RankedHit] = {}
    for hit in hits:
        prev = out.get(hit.doc_id)
        if prev is None or hit.rank < prev.rank:
            out[hit.doc_id] = hit
    return out


def rrf_score(rank: Optional[int], rrf_k: int) -> float:
    """1/(k + rank); a missing rank contributes 0."""
    if not rank:
        return 0.0
    return 1.0 / (float(rrf_k) + float(rank))


def _origin(semantic: Optional[RankedHit], keyword: Optional[RankedHit]) -> Origin:
    if semantic is not None and keyword is not None:
        return Origin.HYBRID
    if semantic is not None:
        return Origin.SEMANTIC
    return Origin.KEYWORD


def fuse(
    semantic_hits: Sequence[RankedHit],
    keyword_hits: Sequence[RankedHit],
    *,
    k: int = DEFAULT_RRF_K,
    limit: int,
) -> List[FusedHit]:
    """
    [职责] RRF 融合：两路全外并集，fused = Σ 1/(k + rank)，排序后截断到 limit。
    [边界] 仅 keyword 命中的文档 similarity 记为 0（展示约定，不代表不相似）。
    [上游关系] orchestrator hybrid 模式调用。
    [下游关系] FusedHit 列表（origin ∈ semantic/keyword/hybrid）。
    """
    if int(limit) <= 0:
        return []
    if int(k) < 1:
        raise ValueError("rrf k must be >= 1")

    sem = _index_by_doc(semantic_hits)
    kw = _index_by_doc(keyword_hits)

    fused: List[FusedHit] = []
    for doc_id in set(sem) | set(kw):
        s = sem.get(doc_id)
        w = kw.get(doc_id)
        meta = dict(s.meta if s is not None else {})
        if w is not None:
            for key, value in w.meta.items():
                meta.setdefault(key, value)  # docstring: 仅补充缺失字段
        fused.append(
            FusedHit(
                doc_id=doc_id,
                score=rrf_score(s.rank if s else None, k) + rrf_score(w.rank if w else None, k),
                origin=_origin(s, w),
                similarity=float(s.score) if s is not None else 0.0,
                semantic_rank=s.rank if s else None,
                keyword_rank=w.rank if w else None,
                meta=meta,
            )
        )

    fused.sort(key=lambda h: (-h.score, h.doc_id))
    return fused[: int(limit)]


def passthrough(hits: Sequence[RankedHit], *, limit: int) -> List[FusedHit]:
    """
    [职责] 单路透传：保持召回阶段的顺序与分数，不做融合。
    [边界] semantic 命中 similarity=score；keyword 命中 similarity=0，score 为词法分数。
    [上游关系] orchestrator semantic/keyword 模式调用。
    [下游关系] FusedHit 列表（origin 与输入一致）。
    """
    out: List[FusedHit] = []
    for hit in list(hits)[: max(0, int(limit))]:
        semantic = hit.origin is Origin.SEMANTIC
        out.append(
            FusedHit(
                doc_id=hit.doc_id,
                score=float(hit.score),
                origin=hit.origin,
                similarity=float(hit.score) if semantic else 0.0,
                semantic_rank=hit.rank if semantic else None,
                keyword_rank=None if semantic else hit.rank,
                meta=dict(hit.meta),
            )
        )
    return out
