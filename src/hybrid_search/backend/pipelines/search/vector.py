# src/hybrid_search/backend/pipelines/search/vector.py

"""
[职责] vector recall：按余弦相似度召回语料文档，产出带名次的 RankedHit 列表。
[边界] 精确扫描（SQL 侧过滤 + numpy 批量余弦）；不做 keyword/fusion；相似度映射到 [0,1]。
[上游关系] orchestrator 传入 query_vector / field / 谓词 / floor / limit。
[下游关系] fusion.fuse 或 fusion.passthrough 消费 RankedHit。
"""

from __future__ import annotations

import logging
import math
from numbers import Real
from typing import Any, List, Protocol, Sequence, Tuple

import numpy as np
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hybrid_search.backend.pipelines.search.corpus import CorpusSpec
from hybrid_search.backend.pipelines.search.filters import Predicate, to_sqlalchemy
from hybrid_search.backend.pipelines.search.types import Origin, RankedHit, SearchField
from hybrid_search.backend.utils.errors import DimensionMismatchError, RetrieverUnavailableError
from hybrid_search.backend.utils.logging_ import get_logger, log_event


logger = get_logger("pipelines.search.vector")


class VectorRetriever(Protocol):
    async def search(
        self,
        *,
        vector: Sequence[float],
        field: SearchField,
        predicates: Tuple[Predicate, ...],
        floor: float,
        limit: int,
    ) -> List[RankedHit]: ...


def cosine_to_similarity(cos: np.ndarray) -> np.ndarray:
    """
    [职责] 余弦值 -> [0,1] 相似度：1 - arccos(cos)/π（1.0 表示方向相同，0.0 表示方向相反）。
    [边界] 先裁剪到 [-1,1] 以吸收浮点误差。
    [上游关系] score_embeddings 调用。
    [下游关系] RankedHit.score。
    """
    clipped = np.clip(cos, -1.0, 1.0)
    return 1.0 - np.arccos(clipped) / math.pi


def score_embeddings(query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """
    [职责] 计算 query 与矩阵每行的 [0,1] 相似度。
    [边界] 零范数行的相似度记为 NaN（调用方丢弃）；matrix 形状为 (n, dim)。
    [上游关系] SqlVectorRetriever.search 调用。
    [下游关系] floor 过滤与排序。
    """
    q = np.asarray(query, dtype=np.float64)
    q_norm = float(np.linalg.norm(q))
    if matrix.size == 0 or q_norm == 0.0:
        return np.full((matrix.shape[0],), np.nan)
    row_norms = np.linalg.norm(matrix, axis=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        cos = (matrix @ q) / (row_norms * q_norm)
    sims = cosine_to_similarity(cos)
    sims[row_norms == 0.0] = np.nan  # docstring: 无方向向量不参与排序
    return sims


def rank_by_similarity(
    scored: Sequence[Tuple[int, float, Any]],
    *,
    floor: float,
    limit: int,
) -> List[Tuple[int, float, Any]]:
    """
    [职责] 相似度过滤 + 确定性排序：similarity DESC，doc_id ASC；截断到 limit。
    [边界] similarity < floor 的候选被丢弃（等于 floor 保留）。
    [上游关系] SqlVectorRetriever.search 调用。
    [下游关系] 组装 RankedHit（rank 从 1 开始）。
    """
    kept = [item for item in scored if item[1] >= floor]
    kept.sort(key=lambda item: (-item[1], item[0]))
    return kept[: max(0, int(limit))]


def _is_stored_vector(emb: Any, dimensions: int) -> bool:
    """Stored embedding must be a `dimensions`-length list of real numbers (bool excluded)."""
    if not isinstance(emb, list) or len(emb) != dimensions:
        return False
    return all(isinstance(v, Real) and not isinstance(v, bool) for v in emb)


class SqlVectorRetriever:
    """
    [职责] 基于 SQL 表内 JSON 向量列的精确余弦检索。
    [边界] 每次调用独立打开 session（便于与 keyword 路并发）；SQLAlchemy 异常统一转换为 RetrieverUnavailableError。
    [上游关系] services/search_service.py 按语料装配。
    [下游关系] SearchOrchestrator 调用 search()。
    """

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        corpus: CorpusSpec,
        dimensions: int,
    ) -> None:
        self._session_factory = session_factory
        self._corpus = corpus
        self._dimensions = int(dimensions)

    async def search(
        self,
        *,
        vector: Sequence[float],
        field: SearchField,
        predicates: Tuple[Predicate, ...],
        floor: float,
        limit: int,
    ) -> List[RankedHit]:
        """
        [职责] 执行向量召回：过滤 -> 打分 -> floor -> 排序 -> 截断 -> 赋名次。
        [边界] 目标向量为空的文档被排除；库内维度异常的向量跳过并告警。
        [上游关系] orchestrator（semantic/hybrid 模式）。
        [下游关系] RankedHit 列表（origin=semantic）。
        """
        if len(vector) != self._dimensions:
            raise DimensionMismatchError(expected=self._dimensions, actual=len(vector), corpus=self._corpus.name)
        if limit <= 0:
            return []

        model = self._corpus.model
        column = self._corpus.embedding_column(field)
        clauses = to_sqlalchemy(self._corpus.base_predicates + tuple(predicates), model)
        stmt = select(model).where(column.is_not(None)).where(*clauses)

        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise RetrieverUnavailableError(
                message="vector retrieval failed",
                detail={"corpus": self._corpus.name, "field": field.value},
                cause=exc,
            ) from exc

        attr = self._corpus.embedding_columns[field]
        usable: List[Any] = []
        embeddings: List[List[float]] = []
        skipped = 0
        for row in rows:
            emb = getattr(row, attr)
            if not _is_stored_vector(emb, self._dimensions):
                skipped += 1
                continue
            usable.append(row)
            embeddings.append(emb)

        if skipped:
            log_event(
                logger,
                logging.WARNING,
                "vector.skip_malformed_embeddings",
                fields={"corpus": self._corpus.name, "field": field.value, "skipped": skipped},
            )

        if not usable:
            return []

        matrix = np.asarray(embeddings, dtype=np.float64)
        sims = score_embeddings(vector, matrix)
        scored = [
            (int(row.id), float(sim), row) for row, sim in zip(usable, sims.tolist()) if not math.isnan(sim)
        ]
        ranked = rank_by_similarity(scored, floor=float(floor), limit=limit)

        return [
            RankedHit(
                doc_id=doc_id,
                score=sim,
                rank=i,
                origin=Origin.SEMANTIC,
                meta=self._corpus.to_meta(row),
            )
            for i, (doc_id, sim, row) in enumerate(ranked, start=1)
        ]
