# src/hybrid_search/backend/pipelines/search/pipeline.py

"""
[职责] search pipeline：SearchOrchestrator 编排 校验 -> embedding -> vector/keyword 召回 -> RRF 融合 -> 截断，产出 SearchResponse。
[边界] 不重试；不降级（任一环节失败整体失败，无部分结果）；不落库；配置为构造时注入的不可变值对象。
[上游关系] services/search_service.py 按语料装配依赖；api 路由或测试调用 execute()。
[下游关系] SearchResponse 交给 api 层扁平化；失败以 DomainError 子类抛出。
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, List, Optional, Sequence, Tuple, TypeVar

from hybrid_search.config import SearchConfig
from hybrid_search.backend.embedding.client import EmbeddingClient
from hybrid_search.backend.pipelines.base.context import SearchContext
from hybrid_search.backend.schemas.search import SearchRequest, SearchResponse, SearchResultItem
from hybrid_search.backend.utils.constants import (
    STAGE_EMBED,
    STAGE_FUSION,
    STAGE_KEYWORD,
    STAGE_VECTOR,
    TIMING_TOTAL_KEY,
)
from hybrid_search.backend.utils.errors import (
    DimensionMismatchError,
    DomainError,
    EmbeddingUnavailableError,
    InvalidQueryError,
    RetrieverUnavailableError,
)
from hybrid_search.backend.utils.logging_ import get_logger, hash_text, log_event, truncate_text

from .corpus import CorpusSpec
from .filters import FilterSpec, Predicate, build_predicates
from .fusion import fuse, passthrough
from .keyword import KeywordRetriever
from .types import FusedHit, SearchField, SearchMode
from .vector import VectorRetriever


logger = get_logger("pipelines.search")

T = TypeVar("T")

_LEGACY_HYBRID_FIELD = "hybrid"  # docstring: 遗留请求以 search_field="hybrid" 表示 hybrid 模式
_STAGE_META_KEY = "stage"  # docstring: ctx.meta 中记录当前阶段（超时归因）
_QUERY_PREVIEW_LEN = 64


@dataclass(frozen=True)
class ResolvedQuery:
    """
    [职责] 校验并归一化后的请求：所有默认值已填充，过滤器已编译为谓词。
    [边界] 仅由 SearchOrchestrator.resolve 构造；不含 I/O 结果。
    [上游关系] SearchRequest。
    [下游关系] _run 按 mode 分发。
    """

    text: str
    top_k: int
    field: SearchField
    mode: SearchMode
    floor: float
    predicates: Tuple[Predicate, ...]
    echo_field: str


async def _gather_legs(*aws: Awaitable[Any]) -> List[Any]:
    """
    [职责] 并发执行多个召回分支并在全部完成后返回结果（顺序与入参一致）。
    [边界] 任一分支失败或外层被取消时，取消其余分支并等待其退出，再向上抛出原异常。
    [上游关系] hybrid 模式调用。
    [下游关系] fuse()。
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)  # docstring: 回收被取消的分支
        raise


class SearchOrchestrator:
    """
    [职责] 单语料检索编排器。
    [边界] 每个请求最多调用一次 embedding；keyword 模式不调用 embedding；端到端共享一个截止时间。
    [上游关系] services/search_service.build_runtime 装配。
    [下游关系] EmbeddingClient / VectorRetriever / KeywordRetriever / fusion。
    """

    def __init__(
        self,
        *,
        corpus: CorpusSpec,
        config: SearchConfig,
        embedder: EmbeddingClient,
        vector_retriever: VectorRetriever,
        keyword_retriever: KeywordRetriever,
        dimensions: int,
    ) -> None:
        self._corpus = corpus
        self._config = config
        self._embedder = embedder
        self._vector = vector_retriever
        self._keyword = keyword_retriever
        self._dimensions = int(dimensions)

    @property
    def corpus(self) -> CorpusSpec:
        return self._corpus

    @property
    def config(self) -> SearchConfig:
        return self._config

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def resolve(self, request: SearchRequest) -> ResolvedQuery:
        """
        [职责] 在任何 I/O 之前完成请求校验与默认值填充。
        [边界] 空白 query、非正 top_k、不支持的字段、越界阈值、未知过滤器均抛 InvalidQueryError；top_k 超上限静默截断。
        [上游关系] execute() 首先调用；测试可单独调用。
        [下游关系] ResolvedQuery。
        """
        text = str(request.query or "").strip()
        if not text:
            raise InvalidQueryError(message="query must not be blank")

        top_k = self._config.default_top_k if request.top_k is None else int(request.top_k)
        if top_k <= 0:
            raise InvalidQueryError(message="top_k must be a positive integer", detail={"top_k": top_k})
        top_k = min(top_k, self._config.max_top_k)  # docstring: 超上限截断，不报错

        field, mode, echo_field = self._resolve_field_and_mode(request)

        floor = (
            self._config.similarity_threshold
            if request.similarity_threshold is None
            else float(request.similarity_threshold)
        )
        if not 0.0 <= floor <= 1.0:
            raise InvalidQueryError(
                message="similarity_threshold must be within [0, 1]",
                detail={"similarity_threshold": floor},
            )

        predicates = build_predicates(
            FilterSpec.from_mapping(request.filters),
            filter_columns=self._corpus.filter_columns,
            status_column=self._corpus.status_column,
            exclusions=self._corpus.status_exclusions,
            policy=self._config.status_filter_policy,
        )

        return ResolvedQuery(
            text=text,
            top_k=top_k,
            field=field,
            mode=mode,
            floor=floor,
            predicates=predicates,
            echo_field=echo_field,
        )

    def _resolve_field_and_mode(self, request: SearchRequest) -> Tuple[SearchField, SearchMode, str]:
        raw_field = str(request.search_field or "").strip().lower()

        if raw_field == _LEGACY_HYBRID_FIELD:
            if request.mode is not None and request.mode is not SearchMode.HYBRID:
                raise InvalidQueryError(
                    message="search_field 'hybrid' conflicts with requested mode",
                    detail={"search_field": raw_field, "mode": request.mode.value},
                )
            return SearchField.CONTENT, SearchMode.HYBRID, _LEGACY_HYBRID_FIELD

        if raw_field:
            try:
                field = SearchField.parse(raw_field)
            except ValueError as exc:
                raise InvalidQueryError(
                    message=f"unknown search_field: {raw_field}",
                    detail={"search_field": raw_field, "allowed": self._allowed_fields()},
                    cause=exc,
                ) from exc
        else:
            field = self._config.default_search_field

        if not self._corpus.supports(field):
            raise InvalidQueryError(
                message=f"search_field '{field.value}' is not supported for corpus '{self._corpus.name}'",
                detail={"search_field": field.value, "allowed": self._allowed_fields()},
            )

        mode = request.mode or SearchMode.SEMANTIC
        return field, mode, field.value

    def _allowed_fields(self) -> List[str]:
        return [f.value for f in self._corpus.supported_fields] + [_LEGACY_HYBRID_FIELD]

    async def execute(self, request: SearchRequest, *, context: Optional[SearchContext] = None) -> SearchResponse:
        """
        [职责] 执行一次检索：resolve -> (embed) -> 召回 -> 融合 -> 组装响应。
        [边界] 成功/失败各写一条结构化日志；query 仅记录 hash 与截断预览。
        [上游关系] api 路由 / services。
        [下游关系] SearchResponse 或 DomainError。
        """
        ctx = context or SearchContext.new(corpus=self._corpus.name)
        query_fields = {
            "corpus": self._corpus.name,
            "query_hash": hash_text(request.query),
            "query_preview": truncate_text(request.query, max_len=_QUERY_PREVIEW_LEN),
        }

        try:
            resolved = self.resolve(request)
            hits = await self._run_with_deadline(resolved, ctx)
        except DomainError as exc:
            log_event(
                logger,
                logging.WARNING,
                "search.failed",
                context=ctx,
                fields={
                    **query_fields,
                    "error_code": exc.error_code,
                    "stage": ctx.meta.get(_STAGE_META_KEY),
                    "timing_ms": ctx.timing_ms(),
                },
            )
            raise

        timing_ms = ctx.timing_ms()
        response = SearchResponse(
            query=resolved.text,
            search_field=resolved.echo_field,
            search_method=resolved.mode,
            total_results=len(hits),
            results=[self._to_item(h) for h in hits],
            latency_ms=int(round(timing_ms.get(TIMING_TOTAL_KEY, 0.0))),
            timing_ms=timing_ms,
        )
        log_event(
            logger,
            logging.INFO,
            "search.completed",
            context=ctx,
            fields={
                **query_fields,
                "mode": resolved.mode.value,
                "field": resolved.field.value,
                "top_k": resolved.top_k,
                "filters": len(resolved.predicates),
                "total_results": response.total_results,
                "timing_ms": timing_ms,
            },
        )
        return response

    async def _run_with_deadline(self, resolved: ResolvedQuery, ctx: SearchContext) -> List[FusedHit]:
        """
        [职责] 在单一截止时间内执行 _run；超时时按当前阶段归因。
        [边界] embed 阶段超时 -> EmbeddingUnavailableError；其余阶段 -> RetrieverUnavailableError。
        [上游关系] execute()。
        [下游关系] _run()。
        """
        timeout = self._config.request_timeout_s
        if timeout is None:
            return await self._run(resolved, ctx)
        try:
            return await asyncio.wait_for(self._run(resolved, ctx), timeout=timeout)
        except asyncio.TimeoutError as exc:
            stage = ctx.meta.get(_STAGE_META_KEY)
            detail = {"corpus": self._corpus.name, "stage": stage, "timeout_s": timeout}
            if stage == STAGE_EMBED:
                raise EmbeddingUnavailableError(message="embedding timed out", detail=detail, cause=exc) from exc
            raise RetrieverUnavailableError(message="retrieval timed out", detail=detail, cause=exc) from exc

    async def _run(self, resolved: ResolvedQuery, ctx: SearchContext) -> List[FusedHit]:
        mode = resolved.mode
        vector: Sequence[float] = ()
        if mode.needs_embedding:
            vector = await self._embed(resolved.text, ctx)

        if mode is SearchMode.SEMANTIC:
            semantic_hits = await self._leg(
                ctx,
                STAGE_VECTOR,
                self._vector.search(
                    vector=vector,
                    field=resolved.field,
                    predicates=resolved.predicates,
                    floor=resolved.floor,
                    limit=resolved.top_k,
                ),
            )
            return self._finish(ctx, lambda: passthrough(semantic_hits, limit=resolved.top_k))

        if mode is SearchMode.HYBRID:
            limit = self._config.candidate_limit(resolved.top_k)
            ctx.meta[_STAGE_META_KEY] = "retrieve"
            semantic_hits, keyword_hits = await _gather_legs(
                self._leg(
                    ctx,
                    STAGE_VECTOR,
                    self._vector.search(
                        vector=vector,
                        field=resolved.field,
                        predicates=resolved.predicates,
                        floor=resolved.floor,
                        limit=limit,
                    ),
                    mark_stage=False,
                ),
                self._leg(
                    ctx,
                    STAGE_KEYWORD,
                    self._keyword.search(text=resolved.text, predicates=resolved.predicates, limit=limit),
                    mark_stage=False,
                ),
            )
            return self._finish(
                ctx,
                lambda: fuse(semantic_hits, keyword_hits, k=self._config.rrf_k, limit=resolved.top_k),
            )

        if mode is SearchMode.KEYWORD:
            keyword_hits = await self._leg(
                ctx,
                STAGE_KEYWORD,
                self._keyword.search(text=resolved.text, predicates=resolved.predicates, limit=resolved.top_k),
            )
            return self._finish(ctx, lambda: passthrough(keyword_hits, limit=resolved.top_k))

        raise ValueError(f"unsupported search mode: {mode!r}")

    async def _embed(self, text: str, ctx: SearchContext) -> List[float]:
        """
        [职责] 调用 embedding 并校验维度。
        [边界] 非 DomainError 异常统一转换为 EmbeddingUnavailableError；维度不一致抛 DimensionMismatchError。
        [上游关系] _run（semantic/hybrid）。
        [下游关系] VectorRetriever.search 的 vector 参数。
        """
        ctx.meta[_STAGE_META_KEY] = STAGE_EMBED
        with ctx.timing.stage(STAGE_EMBED):
            try:
                vector = list(await self._embedder.embed(text))
            except DomainError:
                raise
            except Exception as exc:
                raise EmbeddingUnavailableError(
                    message=f"embedding failed: {exc.__class__.__name__}",
                    detail={"corpus": self._corpus.name},
                    cause=exc,
                ) from exc
        if len(vector) != self._dimensions:
            raise DimensionMismatchError(expected=self._dimensions, actual=len(vector), corpus=self._corpus.name)
        return vector

    async def _leg(self, ctx: SearchContext, stage: str, aw: Awaitable[T], *, mark_stage: bool = True) -> T:
        if mark_stage:
            ctx.meta[_STAGE_META_KEY] = stage
        with ctx.timing.stage(stage):
            try:
                return await aw
            except DomainError:
                raise
            except Exception as exc:
                raise RetrieverUnavailableError(
                    message=f"{stage} retrieval failed: {exc.__class__.__name__}",
                    detail={"corpus": self._corpus.name, "stage": stage},
                    cause=exc,
                ) from exc

    def _finish(self, ctx: SearchContext, combine: Any) -> List[FusedHit]:
        ctx.meta[_STAGE_META_KEY] = STAGE_FUSION
        with ctx.timing.stage(STAGE_FUSION):
            return list(combine())

    @staticmethod
    def _to_item(hit: FusedHit) -> SearchResultItem:
        return SearchResultItem(
            id=hit.doc_id,
            similarity=min(1.0, max(0.0, float(hit.similarity))),
            search_method=hit.origin,
            score=float(hit.score),
            semantic_rank=hit.semantic_rank,
            keyword_rank=hit.keyword_rank,
            metadata=dict(hit.meta),
        )
