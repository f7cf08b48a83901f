# src/hybrid_search/backend/api/routers/search.py

"""
[职责] Search Router：product（/api/search）与 legal（/api/legal/search）两个检索入口。
[边界] 不做检索编排；仅完成 HTTP <-> 领域模型映射与 trace 透传；错误由 app 级 exception handlers 统一渲染。
[上游关系] 客户端 POST 请求。
[下游关系] SearchService.search -> SearchOrchestrator.execute。
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from hybrid_search.backend.api.deps import get_search_service, get_trace_context
from hybrid_search.backend.api.schemas_http.search import (
    LegalSearchRequest,
    LegalSearchResponse,
    ProductSearchRequest,
    ProductSearchResponse,
)
from hybrid_search.backend.pipelines.search.corpus import LEGAL_CORPUS, PRODUCT_CORPUS
from hybrid_search.backend.schemas.audit import TraceContext
from hybrid_search.backend.services.search_service import SearchService


router = APIRouter(prefix="/api", tags=["search"])  # docstring: search 路由前缀


@router.post("/search", response_model=ProductSearchResponse)
async def product_search(
    body: ProductSearchRequest,
    service: SearchService = Depends(get_search_service),
    trace_context: TraceContext = Depends(get_trace_context),
) -> ProductSearchResponse:
    """Semantic / hybrid / keyword search over product records."""
    resp = await service.search(
        PRODUCT_CORPUS.name,
        body.to_domain(),
        trace_id=str(trace_context.trace_id),
        request_id=str(trace_context.request_id),
    )
    return ProductSearchResponse.from_domain(resp)


@router.post("/legal/search", response_model=LegalSearchResponse)
async def legal_search(
    body: LegalSearchRequest,
    service: SearchService = Depends(get_search_service),
    trace_context: TraceContext = Depends(get_trace_context),
) -> LegalSearchResponse:
    """
    [职责] legal 语料检索（jurisdiction/doc_type/practice_area/status_filter 过滤）。
    [边界] 过滤器在任何 I/O 之前编译；非法取值返回 400 search.invalid_query。
    [上游关系] 客户端。
    [下游关系] SearchService.search("legal", ...)。
    """
    resp = await service.search(
        LEGAL_CORPUS.name,
        body.to_domain(),
        trace_id=str(trace_context.trace_id),
        request_id=str(trace_context.request_id),
    )
    return LegalSearchResponse.from_domain(resp)
