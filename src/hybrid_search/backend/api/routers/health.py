# src/hybrid_search/backend/api/routers/health.py

"""
[职责] Health/Info Router：每个语料的健康检查（DB/embedding 服务）与服务信息摘要。
[边界] 不触发检索；仅做轻量探测与配置回显。
[上游关系] 运维/监控系统调用。
[下游关系] SearchService.health / SearchService.info。
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from hybrid_search.backend.api.deps import get_search_service
from hybrid_search.backend.pipelines.search.corpus import LEGAL_CORPUS, PRODUCT_CORPUS
from hybrid_search.backend.services.search_service import SearchService


router = APIRouter(prefix="/api", tags=["health"])  # docstring: health/info 路由前缀

_ENDPOINTS: Dict[str, Dict[str, str]] = {
    PRODUCT_CORPUS.name: {
        "POST /api/search": "Product search (semantic / hybrid / keyword)",
        "GET /api/health": "Health check",
        "GET /api/info": "Service information",
    },
    LEGAL_CORPUS.name: {
        "POST /api/legal/search": "Legal document search with filters",
        "GET /api/legal/health": "Health check",
        "GET /api/legal/info": "Service information",
        "GET /api/legal/stats": "Document statistics",
        "GET /api/legal/stats/{dimension}": "Document counts for one dimension",
    },
}  # docstring: /info 中的端点目录


def _with_endpoints(info: Dict[str, Any], corpus: str) -> Dict[str, Any]:
    out = dict(info)
    out["endpoints"] = dict(_ENDPOINTS.get(corpus, {}))
    return out


@router.get("/health")
async def product_health(service: SearchService = Depends(get_search_service)) -> Dict[str, Any]:
    return await service.health(PRODUCT_CORPUS.name)


@router.get("/info")
async def product_info(service: SearchService = Depends(get_search_service)) -> Dict[str, Any]:
    return _with_endpoints(service.info(PRODUCT_CORPUS.name), PRODUCT_CORPUS.name)


@router.get("/legal/health")
async def legal_health(service: SearchService = Depends(get_search_service)) -> Dict[str, Any]:
    return await service.health(LEGAL_CORPUS.name)


@router.get("/legal/info")
async def legal_info(service: SearchService = Depends(get_search_service)) -> Dict[str, Any]:
    return _with_endpoints(service.info(LEGAL_CORPUS.name), LEGAL_CORPUS.name)
