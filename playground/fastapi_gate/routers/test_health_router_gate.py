# playground/fastapi_gate/routers/test_health_router_gate.py

"""
[职责] Health/Info/Stats router gate：验证每个语料的健康检查、服务信息、统计输出结构，以及启动维度自检。
[边界] Fake/Mock embedding；真实 SQLite。
[上游关系] backend/api/routers/health.py、routers/stats.py、api/app.py lifespan。
[下游关系] 运维/监控依赖此响应结构。
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Dict, List

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from hybrid_search.config import EmbeddingConfig, Settings
from hybrid_search.backend.api.app import create_app
from hybrid_search.backend.embedding.client import HttpEmbeddingClient
from hybrid_search.backend.schemas.ids import new_uuid
from hybrid_search.backend.services.search_service import SearchService
from hybrid_search.backend.utils.errors import DimensionMismatchError


pytestmark = pytest.mark.fastapi_gate


def _settings() -> Settings:
    return Settings(EMBEDDING_DIMENSIONS=384, LEGAL_EMBEDDING_DIMENSIONS=768)


def _mock_embedding_client(*, dimensions: int, returned: int, corpus: str) -> HttpEmbeddingClient:
    """Mock embedding service: /embed returns a `returned`-length vector, /health is up."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/health":
            return httpx.Response(200, json={"status": "ok"})
        return httpx.Response(200, json={"embedding": [0.0] * returned, "dimensions": returned})

    return HttpEmbeddingClient(
        config=EmbeddingConfig(base_url="http://embed.test", dimensions=dimensions),
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://embed.test"),
        corpus=corpus,
    )


@pytest_asyncio.fixture
async def api(session_factory, product_dataset, legal_dataset, make_embedder) -> AsyncIterator[AsyncClient]:
    service = SearchService.from_settings(
        _settings(),
        session_factory=session_factory,
        embedders={"product": make_embedder(dim=384), "legal": make_embedder(dim=768)},
    )
    app = create_app(service=service, verify_dimensions=False)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.mark.asyncio
async def test_health_per_corpus(api: AsyncClient) -> None:
    trace_id, request_id = str(new_uuid()), str(new_uuid())
    resp = await api.get("/api/health", headers={"x-trace-id": trace_id, "x-request-id": request_id})

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["corpus"] == "product"
    assert data["database"] == "connected"
    assert data["embedding_service"] == "unknown"  # docstring: fake embedder 不提供 ping
    assert data["embedding_dimensions"] == 384
    assert data["indexed_documents"] == 4
    assert data["timestamp"]
    assert resp.headers["x-trace-id"] == trace_id
    assert resp.headers["x-request-id"] == request_id

    legal = (await api.get("/api/legal/health")).json()
    assert legal["corpus"] == "legal"
    assert legal["embedding_dimensions"] == 768
    assert legal["indexed_documents"] == 4


@pytest.mark.asyncio
async def test_info_per_corpus(api: AsyncClient) -> None:
    product = (await api.get("/api/info")).json()
    assert product["service"] == "hybrid_search"
    assert product["api_version"] == "v1"
    assert product["supported_fields"] == ["content", "title"]
    assert product["search_modes"] == ["semantic", "hybrid", "keyword"]
    assert product["filterable_fields"] == ["category"]
    assert product["defaults"]["top_k"] == 10
    assert product["defaults"]["max_top_k"] == 100
    assert product["defaults"]["rrf_k"] == 60
    assert "POST /api/search" in product["endpoints"]

    legal = (await api.get("/api/legal/info")).json()
    assert legal["supported_fields"] == ["content", "title", "headnotes"]
    assert legal["filterable_fields"] == ["doc_type", "jurisdiction", "practice_area", "status_filter"]
    assert legal["distance_metric"] == "cosine"
    assert "GET /api/legal/stats" in legal["endpoints"]


@pytest.mark.asyncio
async def test_legal_stats(api: AsyncClient) -> None:
    resp = await api.get("/api/legal/stats")

    assert resp.status_code == 200
    data = resp.json()
    assert data["indexed_documents"] == 4
    assert data["by_document_type"] == {"case": 3, "secondary": 1, "statute": 1}
    assert data["by_jurisdiction"] == {"CA": 2, "US": 2, "NY": 1}
    assert data["by_practice_area"] == {"employment": 3, "civil_rights": 2}
    assert data["by_status"] == {"good_law": 3, "overruled": 1, "unknown": 1}


@pytest.mark.asyncio
async def test_legal_dimension_stats(api: AsyncClient) -> None:
    ok = await api.get("/api/legal/stats/jurisdiction")
    assert ok.status_code == 200
    assert ok.json() == {"corpus": "legal", "dimension": "jurisdiction", "counts": {"CA": 2, "US": 2, "NY": 1}}

    bad = await api.get("/api/legal/stats/court")
    assert bad.status_code == 400
    error = bad.json()["error"]
    assert error["code"] == "bad_request"
    assert "allowed" in error["detail"]


@pytest.mark.asyncio
async def test_lifespan_self_check_passes(session_factory) -> None:
    clients: List[HttpEmbeddingClient] = [
        _mock_embedding_client(dimensions=384, returned=384, corpus="product"),
        _mock_embedding_client(dimensions=768, returned=768, corpus="legal"),
    ]
    service = SearchService.from_settings(
        _settings(),
        session_factory=session_factory,
        embedders={"product": clients[0], "legal": clients[1]},
    )
    app = create_app(service=service, verify_dimensions=True)

    async with app.router.lifespan_context(app):
        assert app.state.search_service is service
        health: Dict[str, Any] = await service.health("product")
        assert health["embedding_service"] == "up"


@pytest.mark.asyncio
async def test_lifespan_aborts_on_dimension_mismatch(session_factory) -> None:
    service = SearchService.from_settings(
        _settings(),
        session_factory=session_factory,
        embedders={
            "product": _mock_embedding_client(dimensions=384, returned=384, corpus="product"),
            "legal": _mock_embedding_client(dimensions=768, returned=1024, corpus="legal"),
        },
    )
    app = create_app(service=service, verify_dimensions=True)

    with pytest.raises(DimensionMismatchError) as exc_info:
        async with app.router.lifespan_context(app):
            pass  # pragma: no cover
    assert exc_info.value.expected == 768
    assert exc_info.value.actual == 1024


@pytest.mark.asyncio
async def test_lifespan_starts_when_embedding_unreachable(session_factory) -> None:
    """Unreachable embedder at boot: startup continues, health reports degraded."""

    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    def _unreachable(dimensions: int, corpus: str) -> HttpEmbeddingClient:
        return HttpEmbeddingClient(
            config=EmbeddingConfig(base_url="http://embed.test", dimensions=dimensions),
            client=httpx.AsyncClient(transport=httpx.MockTransport(refused), base_url="http://embed.test"),
            corpus=corpus,
        )

    service = SearchService.from_settings(
        _settings(),
        session_factory=session_factory,
        embedders={"product": _unreachable(384, "product"), "legal": _unreachable(768, "legal")},
    )
    app = create_app(service=service, verify_dimensions=True)

    async with app.router.lifespan_context(app):
        assert await service.verify_embedding_dimensions() == {}  # docstring: 不可达语料被跳过
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            health = (await client.get("/api/health")).json()
            search = await client.post("/api/search", json={"query": "running shoes"})

    assert health["status"] == "degraded"
    assert health["embedding_service"] == "down"
    assert search.status_code == 503
    assert search.json()["error"]["code"] == "search.embedding_unavailable"
