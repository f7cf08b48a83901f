# src/hybrid_search/backend/api/routers/stats.py

"""
[职责] Stats Router：legal 语料统计（已索引数 + doc_type/jurisdiction/practice_area/status 分组计数）。
[边界] 只读；未知维度返回 400 bad_request。
[上游关系] 运维/前端调用。
[下游关系] SearchService.stats / SearchService.count_by_dimension -> StatsRepo。
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from hybrid_search.backend.api.deps import get_search_service
from hybrid_search.backend.api.schemas_http.search import DimensionStatsResponse, LegalStatsResponse
from hybrid_search.backend.pipelines.search.corpus import LEGAL_CORPUS
from hybrid_search.backend.services.search_service import SearchService


router = APIRouter(prefix="/api/legal/stats", tags=["stats"])  # docstring: stats 路由前缀


@router.get("", response_model=LegalStatsResponse)
async def legal_stats(service: SearchService = Depends(get_search_service)) -> LegalStatsResponse:
    stats = await service.stats(LEGAL_CORPUS.name)
    return LegalStatsResponse(
        indexed_documents=int(stats["indexed_documents"]),
        by_document_type=stats.get("doc_type", {}),
        by_jurisdiction=stats.get("jurisdiction", {}),
        by_practice_area=stats.get("practice_area", {}),
        by_status=stats.get("status", {}),
    )


@router.get("/{dimension}", response_model=DimensionStatsResponse)
async def legal_dimension_stats(
    dimension: str,
    service: SearchService = Depends(get_search_service),
) -> DimensionStatsResponse:
    counts = await service.count_by_dimension(LEGAL_CORPUS.name, dimension)
    return DimensionStatsResponse(corpus=LEGAL_CORPUS.name, dimension=dimension, counts=counts)
