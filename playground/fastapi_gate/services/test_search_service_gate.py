# playground/fastapi_gate/services/test_search_service_gate.py

"""
[职责] SearchService gate：验证多语料装配、语料查找、stats 汇总、health 降级判定与维度自检。
[边界] 不经过 HTTP；embedding 使用 FakeEmbedder 或 httpx.MockTransport。
[上游关系] backend/services/search_service.py。
[下游关系] api routers。
"""

from __future__ import annotations

import httpx
import pytest

from hybrid_search.config import EmbeddingConfig, Settings
from hybrid_search.backend.embedding.client import HttpEmbeddingClient
from hybrid_search.backend.schemas.search import SearchRequest
from hybrid_search.backend.services.search_service import SearchService
from hybrid_search.backend.utils.errors import BadRequestError


pytestmark = pytest.mark.fastapi_gate


def _service(session_factory, embedders) -> SearchService:
    return SearchService.from_settings(
        Settings(EMBEDDING_DIMENSIONS=384, LEGAL_EMBEDDING_DIMENSIONS=768, SEARCH_REQUEST_TIMEOUT_S=0),
        session_factory=session_factory,
        embedders=embedders,
    )


@pytest.mark.asyncio
async def test_runtimes_and_search(session_factory, product_dataset, make_embedder) -> None:
    svc = _service(
        session_factory,
        {"product": make_embedder(dim=384, mapping=product_dataset), "legal": make_embedder(dim=768)},
    )

    assert svc.corpora() == ["legal", "product"]
    assert svc.search_config.request_timeout_s is None  # docstring: <=0 关闭端到端超时
    assert svc.runtime("product").embedding.dimensions == 384
    with pytest.raises(BadRequestError):
        svc.runtime("patents")

    resp = await svc.search("product", SearchRequest(query="running shoes", top_k=2), trace_id="t", request_id="r")
    assert [item.id for item in resp.results] == [1, 2]


@pytest.mark.asyncio
async def test_stats_summary(session_factory, legal_dataset, make_embedder) -> None:
    svc = _service(session_factory, {"product": make_embedder(dim=384), "legal": make_embedder(dim=768)})

    stats = await svc.stats("legal")
    assert list(stats) == ["indexed_documents", "doc_type", "jurisdiction", "practice_area", "status"]
    assert stats["indexed_documents"] == 4
    assert await svc.indexed_count("product") == 0


@pytest.mark.asyncio
async def test_health_degraded_when_embedding_down(session_factory) -> None:
    down = HttpEmbeddingClient(
        config=EmbeddingConfig(base_url="http://embed.test", dimensions=384),
        client=httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(503)),
            base_url="http://embed.test",
        ),
        corpus="product",
    )
    svc = _service(session_factory, {"product": down})
    try:
        health = await svc.health("product")
    finally:
        await svc.aclose()

    assert health["status"] == "degraded"
    assert health["database"] == "connected"
    assert health["embedding_service"] == "down"
    assert health["indexed_documents"] == 0


@pytest.mark.asyncio
async def test_verify_skips_embedders_without_self_check(session_factory, make_embedder) -> None:
    svc = _service(session_factory, {"product": make_embedder(dim=384), "legal": make_embedder(dim=768)})
    assert await svc.verify_embedding_dimensions() == {}
