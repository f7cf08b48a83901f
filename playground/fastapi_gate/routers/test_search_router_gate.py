# playground/fastapi_gate/routers/test_search_router_gate.py

"""
[职责] Search router gate：验证 /api/search、/api/legal/search 的 HTTP 契约、错误映射与 trace header 透传。
[边界] 真实 SQLite + FakeEmbedder；不运行 lifespan（service 直接注入 app.state）。
[上游关系] backend/api/app.py、routers/search.py、schemas_http/search.py。
[下游关系] 客户端依赖此响应结构与错误码。
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Dict

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from hybrid_search.config import Settings
from hybrid_search.backend.api.app import create_app
from hybrid_search.backend.schemas.ids import new_uuid
from hybrid_search.backend.services.search_service import SearchService


pytestmark = pytest.mark.fastapi_gate


def _settings() -> Settings:
    return Settings(
        EMBEDDING_DIMENSIONS=384,
        LEGAL_EMBEDDING_DIMENSIONS=768,
        SEARCH_REQUEST_TIMEOUT_S=10.0,
        VERIFY_EMBEDDING_DIMENSIONS=False,
    )


async def _client_for(session_factory: Any, embedders: Dict[str, Any]) -> AsyncClient:
    service = SearchService.from_settings(_settings(), session_factory=session_factory, embedders=embedders)
    app = create_app(service=service, verify_dimensions=False)
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.fixture
def embedders(product_dataset, legal_dataset, make_embedder) -> Dict[str, Any]:
    return {
        "product": make_embedder(dim=384, mapping=product_dataset),
        "legal": make_embedder(dim=768, mapping=legal_dataset),
    }


@pytest_asyncio.fixture
async def api(session_factory, embedders: Dict[str, Any]) -> AsyncIterator[AsyncClient]:
    async with await _client_for(session_factory, embedders) as client:
        yield client


@pytest.mark.asyncio
async def test_product_search_ok(api: AsyncClient) -> None:
    trace_id, request_id = str(new_uuid()), str(new_uuid())
    resp = await api.post(
        "/api/search",
        json={"query": "running shoes", "top_k": 5},
        headers={"x-trace-id": trace_id, "x-request-id": request_id},
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["query"] == "running shoes"
    assert data["search_field"] == "content"
    assert data["search_method"] == "semantic"
    assert data["total_results"] == 4
    assert [r["id"] for r in data["results"]] == [1, 2, 3, 4]
    first = data["results"][0]
    assert first["title"] == "Trail running shoes"
    assert first["category"] == "footwear"
    assert first["tags"] == ["trail", "running"]
    assert first["raw_data"] == {"sku": "TR-1"}
    assert first["similarity"] == pytest.approx(1.0)
    assert isinstance(data["latency_ms"], int)
    assert resp.headers["x-trace-id"] == trace_id
    assert resp.headers["x-request-id"] == request_id


@pytest.mark.asyncio
async def test_legacy_hybrid_field(api: AsyncClient) -> None:
    resp = await api.post("/api/search", json={"query": "running shoes", "search_field": "hybrid"})

    assert resp.status_code == 200
    data = resp.json()
    assert data["search_method"] == "hybrid"
    assert data["search_field"] == "hybrid"
    methods = {r["id"]: r["search_method"] for r in data["results"]}
    assert methods[1] == "hybrid"
    assert methods[4] == "semantic"


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{"query": "   "}, {}])
async def test_blank_query_is_invalid_query(api: AsyncClient, embedders: Dict[str, Any], body: Dict[str, Any]) -> None:
    trace_id = str(new_uuid())
    resp = await api.post("/api/search", json=body, headers={"x-trace-id": trace_id})

    assert resp.status_code == 400
    error = resp.json()["error"]
    assert error["code"] == "search.invalid_query"
    assert error["trace_id"] == trace_id
    assert resp.headers["x-trace-id"] == trace_id
    assert embedders["product"].calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"query": "shoes", "unexpected": 1},
        {"query": "shoes", "top_k": "many"},
        {"query": "shoes", "jurisdiction": "CA"},
        {"query": "shoes", "mode": "fuzzy"},
    ],
)
async def test_malformed_body_is_bad_request(api: AsyncClient, body: Dict[str, Any]) -> None:
    resp = await api.post("/api/search", json=body)

    assert resp.status_code == 400
    error = resp.json()["error"]
    assert error["code"] == "bad_request"
    assert error["detail"]["errors"]


@pytest.mark.asyncio
async def test_top_k_zero_and_bad_field(api: AsyncClient) -> None:
    zero = await api.post("/api/search", json={"query": "shoes", "top_k": 0})
    assert zero.status_code == 400
    assert zero.json()["error"]["code"] == "search.invalid_query"

    field = await api.post("/api/search", json={"query": "shoes", "search_field": "headnotes"})
    assert field.status_code == 400
    assert field.json()["error"]["detail"]["allowed"] == ["content", "title", "hybrid"]


@pytest.mark.asyncio
async def test_legal_search_with_filters(api: AsyncClient) -> None:
    resp = await api.post(
        "/api/legal/search",
        json={
            "query": "wrongful termination",
            "top_k": 5,
            "jurisdiction": "CA",
            "status_filter": "exclude_overruled",
        },
    )

    assert resp.status_code == 200
    results = resp.json()["results"]
    assert [r["id"] for r in results] == [1]
    hit = results[0]
    assert hit["doc_id"] == "case-1"
    assert hit["jurisdiction"] == "CA"
    assert hit["citation"] == "1 Cal. 100"
    assert hit["content_snippet"].startswith("Wrongful termination")


@pytest.mark.asyncio
async def test_legal_hybrid_citation_query(api: AsyncClient) -> None:
    resp = await api.post(
        "/api/legal/search",
        json={"query": "42 U.S.C. § 1983", "mode": "hybrid", "similarity_threshold": 0.6},
    )

    assert resp.status_code == 200
    results = resp.json()["results"]
    assert sorted(r["doc_id"] for r in results) == ["commentary-1983", "statute-1983"]
    assert all(r["search_method"] in ("keyword", "hybrid") for r in results)


@pytest.mark.asyncio
async def test_embedding_failure_is_503(session_factory, legal_dataset, make_embedder) -> None:
    embedders = {
        "product": make_embedder(dim=384),
        "legal": make_embedder(dim=768, error=ConnectionError("refused")),
    }
    async with await _client_for(session_factory, embedders) as client:
        resp = await client.post("/api/legal/search", json={"query": "wrongful termination"})

    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "search.embedding_unavailable"


@pytest.mark.asyncio
async def test_dimension_mismatch_is_500(session_factory, product_dataset, make_embedder) -> None:
    embedders = {
        "product": make_embedder(dim=384, default=[1.0] * 768),
        "legal": make_embedder(dim=768),
    }
    async with await _client_for(session_factory, embedders) as client:
        resp = await client.post("/api/search", json={"query": "running shoes"})

    assert resp.status_code == 500
    error = resp.json()["error"]
    assert error["code"] == "search.dimension_mismatch"
    assert error["detail"] == {"expected": 384, "actual": 768, "corpus": "product"}


@pytest.mark.asyncio
async def test_keyword_mode_does_not_call_embedding(api: AsyncClient, embedders: Dict[str, Any]) -> None:
    resp = await api.post("/api/search", json={"query": "running shoes", "mode": "keyword"})

    assert resp.status_code == 200
    assert sorted(r["id"] for r in resp.json()["results"]) == [1, 2]
    assert embedders["product"].calls == []
