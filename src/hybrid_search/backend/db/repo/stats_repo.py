# src/hybrid_search/backend/db/repo/stats_repo.py

"""
[职责] StatsRepo：语料统计只读查询（已索引文档数、按维度分组计数）。
[边界] 只读；不提交事务；维度白名单来自 CorpusSpec.stats_dimensions。
[上游关系] services/search_service.py 或 api 路由通过 AsyncSession 构造。
[下游关系] /api/legal/stats、/api/info、/api/health 返回统计字段。
"""

from __future__ import annotations

from typing import Dict

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hybrid_search.backend.pipelines.search.corpus import CorpusSpec
from hybrid_search.backend.pipelines.search.filters import to_sqlalchemy
from hybrid_search.backend.pipelines.search.types import SearchField
from hybrid_search.backend.utils.errors import BadRequestError


UNKNOWN_VALUE = "unknown"  # docstring: 维度取值为 NULL 时的分组键


class StatsRepo:
    """Corpus statistics repository."""

    def __init__(self, session: AsyncSession):
        self._session = session  # docstring: DB 会话（由 deps 注入）

    async def get_indexed_count(self, corpus: CorpusSpec) -> int:
        """
        [职责] 统计 content 向量非空（且满足语料基础谓词）的文档数。
        [边界] 不校验向量维度。
        [上游关系] health/info/stats 路由。
        [下游关系] indexed_documents 字段。
        """
        model = corpus.model
        stmt = (
            select(func.count())
            .select_from(model)
            .where(corpus.embedding_column(SearchField.CONTENT).is_not(None))
            .where(*to_sqlalchemy(corpus.base_predicates, model))
        )
        return int((await self._session.execute(stmt)).scalar_one() or 0)

    async def get_count_by_dimension(self, corpus: CorpusSpec, dimension: str) -> Dict[str, int]:
        """
        [职责] 按维度分组计数：{value: count}，按 count DESC、value ASC 排序。
        [边界] 未登记的维度抛 BadRequestError；NULL 取值归入 "unknown"。
        [上游关系] stats 路由。
        [下游关系] 有序 dict（插入顺序即排序结果）。
        """
        name = str(dimension or "").strip()
        column_name = corpus.stats_dimensions.get(name)
        if column_name is None:
            raise BadRequestError(
                message=f"unknown stats dimension: {name}",
                detail={"dimension": name, "allowed": sorted(corpus.stats_dimensions)},
            )

        model = corpus.model
        col = getattr(model, column_name)
        stmt = (
            select(col, func.count().label("cnt"))
            .where(*to_sqlalchemy(corpus.base_predicates, model))
            .group_by(col)
        )
        rows = (await self._session.execute(stmt)).all()

        counts: Dict[str, int] = {}
        for value, cnt in rows:
            key = UNKNOWN_VALUE if value is None else str(value)
            counts[key] = counts.get(key, 0) + int(cnt)
        return dict(sorted(counts.items(), key=lambda item: (-item[1], item[0])))
