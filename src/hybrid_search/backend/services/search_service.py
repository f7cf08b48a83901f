# src/hybrid_search/backend/services/search_service.py

"""
[职责] search_service：按语料装配检索运行时（embedding client + retrievers + orchestrator），并提供 search/health/info/stats 业务入口。
[边界] 不暴露 HTTP 语义；不持有全局可变配置（SearchConfig 在构造时注入）；不重试。
[上游关系] api/app.py lifespan 构造 SearchService；api/routers 通过 deps 获取。
[下游关系] SearchOrchestrator / StatsRepo / HttpEmbeddingClient。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hybrid_search.config import (
    EmbeddingConfig,
    SearchConfig,
    Settings,
    legal_embedding_config,
    product_embedding_config,
)
from hybrid_search.backend.db.repo import StatsRepo
from hybrid_search.backend.embedding.client import EmbeddingClient, HttpEmbeddingClient
from hybrid_search.backend.pipelines.base.context import SearchContext
from hybrid_search.backend.pipelines.search.corpus import CORPORA, LEGAL_CORPUS, PRODUCT_CORPUS, CorpusSpec
from hybrid_search.backend.pipelines.search.filters import STATUS_FILTER_KEY
from hybrid_search.backend.pipelines.search.keyword import FtsKeywordRetriever
from hybrid_search.backend.pipelines.search.pipeline import SearchOrchestrator
from hybrid_search.backend.pipelines.search.types import SearchMode
from hybrid_search.backend.pipelines.search.vector import SqlVectorRetriever
from hybrid_search.backend.schemas.search import SearchRequest, SearchResponse
from hybrid_search.backend.utils.constants import API_VERSION, SERVICE_NAME, SERVICE_VERSION
from hybrid_search.backend.utils.errors import BadRequestError, EmbeddingUnavailableError
from hybrid_search.backend.utils.logging_ import get_logger, log_event


logger = get_logger("services.search")

HEALTHY = "healthy"
DEGRADED = "degraded"


@dataclass(frozen=True)
class CorpusRuntime:
    """
    [职责] 单语料运行时：语料描述 + embedding 配置/客户端 + 编排器。
    [边界] 生命周期与 SearchService 相同；embedder 由 SearchService.aclose 释放。
    [上游关系] build_runtime 构造。
    [下游关系] SearchService 各入口按语料名查找。
    """

    corpus: CorpusSpec
    embedding: EmbeddingConfig
    embedder: EmbeddingClient
    orchestrator: SearchOrchestrator


def build_runtime(
    *,
    corpus: CorpusSpec,
    search_config: SearchConfig,
    embedding_config: EmbeddingConfig,
    session_factory: async_sessionmaker[AsyncSession],
    embedder: Optional[EmbeddingClient] = None,
) -> CorpusRuntime:
    """
    [职责] 装配单语料的 retrievers 与 orchestrator。
    [边界] embedder 可注入（测试用 fake / MockTransport）；默认按 embedding_config 新建 HttpEmbeddingClient。
    [上游关系] SearchService.from_settings 或测试。
    [下游关系] CorpusRuntime。
    """
    client = embedder or HttpEmbeddingClient(config=embedding_config, corpus=corpus.name)
    orchestrator = SearchOrchestrator(
        corpus=corpus,
        config=search_config,
        embedder=client,
        vector_retriever=SqlVectorRetriever(
            session_factory=session_factory,
            corpus=corpus,
            dimensions=embedding_config.dimensions,
        ),
        keyword_retriever=FtsKeywordRetriever(session_factory=session_factory, corpus=corpus),
        dimensions=embedding_config.dimensions,
    )
    return CorpusRuntime(corpus=corpus, embedding=embedding_config, embedder=client, orchestrator=orchestrator)


class SearchService:
    """
    [职责] 多语料检索服务门面。
    [边界] 每个 stats/health 调用独立打开 session；检索 session 由 retrievers 自行管理。
    [上游关系] api deps。
    [下游关系] CorpusRuntime / StatsRepo。
    """

    def __init__(
        self,
        *,
        runtimes: Mapping[str, CorpusRuntime],
        session_factory: async_sessionmaker[AsyncSession],
        search_config: SearchConfig,
    ) -> None:
        self._runtimes: Dict[str, CorpusRuntime] = dict(runtimes)
        self._session_factory = session_factory
        self._search_config = search_config

    @classmethod
    def from_settings(
        cls,
        s: Settings,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        embedders: Optional[Mapping[str, EmbeddingClient]] = None,
    ) -> "SearchService":
        search_config = SearchConfig.from_settings(s)
        injected = dict(embedders or {})
        embedding_configs = {
            PRODUCT_CORPUS.name: product_embedding_config(s),
            LEGAL_CORPUS.name: legal_embedding_config(s),
        }
        runtimes = {
            name: build_runtime(
                corpus=CORPORA[name],
                search_config=search_config,
                embedding_config=cfg,
                session_factory=session_factory,
                embedder=injected.get(name),
            )
            for name, cfg in embedding_configs.items()
        }
        return cls(runtimes=runtimes, session_factory=session_factory, search_config=search_config)

    @property
    def search_config(self) -> SearchConfig:
        return self._search_config

    def corpora(self) -> List[str]:
        return sorted(self._runtimes)

    def runtime(self, corpus: str) -> CorpusRuntime:
        rt = self._runtimes.get(str(corpus))
        if rt is None:
            raise BadRequestError(
                message=f"unknown corpus: {corpus}",
                detail={"corpus": str(corpus), "allowed": self.corpora()},
            )
        return rt

    async def search(
        self,
        corpus: str,
        request: SearchRequest,
        *,
        trace_id: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> SearchResponse:
        rt = self.runtime(corpus)
        ctx = SearchContext.new(corpus=rt.corpus.name, trace_id=trace_id, request_id=request_id)
        return await rt.orchestrator.execute(request, context=ctx)

    async def verify_embedding_dimensions(self) -> Dict[str, int]:
        """
        [职责] 启动自检：对每个语料调用一次 embed("test") 并比对配置维度。
        [边界] 任一语料不一致即抛 DimensionMismatchError（中止启动）；embedding 服务暂不可达时记录告警并跳过该语料，由后续请求以 503 暴露。
        [上游关系] app lifespan。
        [下游关系] HttpEmbeddingClient.verify_dimensions。
        """
        verified: Dict[str, int] = {}
        for name in self.corpora():
            embedder = self._runtimes[name].embedder
            verify = getattr(embedder, "verify_dimensions", None)
            if verify is None:
                continue  # docstring: 注入的 fake 可不实现自检
            try:
                verified[name] = int(await verify())
            except EmbeddingUnavailableError as exc:
                log_event(
                    logger,
                    logging.WARNING,
                    "embedding.self_check_skipped",
                    fields={"corpus": name, "error_code": exc.error_code, "reason": exc.message},
                )
        return verified

    async def indexed_count(self, corpus: str) -> int:
        rt = self.runtime(corpus)
        async with self._session_factory() as session:
            return await StatsRepo(session).get_indexed_count(rt.corpus)

    async def count_by_dimension(self, corpus: str, dimension: str) -> Dict[str, int]:
        rt = self.runtime(corpus)
        async with self._session_factory() as session:
            return await StatsRepo(session).get_count_by_dimension(rt.corpus, dimension)

    async def stats(self, corpus: str) -> Dict[str, Any]:
        """
        [职责] 汇总语料统计：已索引数 + 各登记维度分组计数。
        [边界] 维度顺序与 CorpusSpec.stats_dimensions 一致。
        [上游关系] GET /api/legal/stats。
        [下游关系] LegalStatsResponse。
        """
        rt = self.runtime(corpus)
        async with self._session_factory() as session:
            repo = StatsRepo(session)
            out: Dict[str, Any] = {"indexed_documents": await repo.get_indexed_count(rt.corpus)}
            for dimension in rt.corpus.stats_dimensions:
                out[dimension] = await repo.get_count_by_dimension(rt.corpus, dimension)
        return out

    async def health(self, corpus: str) -> Dict[str, Any]:
        """
        [职责] 健康检查：DB 连通性（SELECT 1 + 已索引数）与 embedding 服务 ping。
        [边界] 依赖异常不抛出，转换为 degraded 状态并记录日志。
        [上游关系] GET /api/health、/api/legal/health。
        [下游关系] HealthResponse。
        """
        rt = self.runtime(corpus)
        database = "connected"
        indexed: Optional[int] = None
        try:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))
                indexed = await StatsRepo(session).get_indexed_count(rt.corpus)
        except SQLAlchemyError as exc:
            database = "error"
            log_event(
                logger,
                logging.WARNING,
                "health.database_error",
                fields={"corpus": rt.corpus.name, "error": exc.__class__.__name__},
            )

        ping = getattr(rt.embedder, "ping", None)
        embedding_up = bool(await ping()) if ping is not None else None
        embedding_service = "unknown" if embedding_up is None else ("up" if embedding_up else "down")

        status = HEALTHY if database == "connected" and embedding_up is not False else DEGRADED
        return {
            "status": status,
            "service": SERVICE_NAME,
            "corpus": rt.corpus.name,
            "database": database,
            "embedding_service": embedding_service,
            "embedding_dimensions": rt.embedding.dimensions,
            "indexed_documents": indexed,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def info(self, corpus: str) -> Dict[str, Any]:
        rt = self.runtime(corpus)
        cfg = self._search_config
        filterable = sorted(rt.corpus.filter_columns)
        if rt.corpus.status_column:
            filterable.append(STATUS_FILTER_KEY)
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "api_version": API_VERSION,
            "corpus": rt.corpus.name,
            "embedding_dimensions": rt.embedding.dimensions,
            "distance_metric": "cosine",
            "supported_fields": [f.value for f in rt.corpus.supported_fields],
            "search_modes": [m.value for m in SearchMode],
            "filterable_fields": filterable,
            "stats_dimensions": list(rt.corpus.stats_dimensions),
            "defaults": {
                "top_k": cfg.default_top_k,
                "max_top_k": cfg.max_top_k,
                "search_field": cfg.default_search_field.value,
                "similarity_threshold": cfg.similarity_threshold,
                "rrf_k": cfg.rrf_k,
                "status_filter_policy": cfg.status_filter_policy.value,
            },
        }

    async def aclose(self) -> None:
        for rt in self._runtimes.values():
            close = getattr(rt.embedder, "aclose", None)
            if close is not None:
                await close()
