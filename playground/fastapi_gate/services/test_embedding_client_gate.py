# playground/fastapi_gate/services/test_embedding_client_gate.py

"""
[职责] Embedding client gate：验证 HttpEmbeddingClient 的请求契约、错误映射（超时/非 2xx/畸形响应）、维度自检与 ping。
[边界] 通过 httpx.MockTransport 模拟 embedding 服务；不访问网络。
[上游关系] backend/embedding/client.py。
[下游关系] orchestrator embed 阶段与 app lifespan 自检。
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List

import httpx
import pytest

from hybrid_search.config import EmbeddingConfig
from hybrid_search.backend.embedding.client import HttpEmbeddingClient, parse_embedding_payload
from hybrid_search.backend.utils.errors import DimensionMismatchError, EmbeddingUnavailableError


pytestmark = pytest.mark.fastapi_gate

_BASE_URL = "http://embed.test"


def _client(handler: Callable[[httpx.Request], httpx.Response], *, dimensions: int = 3) -> HttpEmbeddingClient:
    transport = httpx.MockTransport(handler)  # docstring: 进程内模拟 embedding 服务
    return HttpEmbeddingClient(
        config=EmbeddingConfig(base_url=_BASE_URL, dimensions=dimensions, timeout_s=1.0),
        client=httpx.AsyncClient(transport=transport, base_url=_BASE_URL),
        corpus="product",
    )


def _ok(vector: List[float], **extra: Any) -> httpx.Response:
    body: Dict[str, Any] = {"embedding": vector, "dimensions": len(vector), "model": "mini"}
    body.update(extra)
    return httpx.Response(200, json=body)


@pytest.mark.asyncio
async def test_embed_posts_text_and_returns_vector() -> None:
    seen: List[Dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append({"method": request.method, "path": request.url.path, "body": json.loads(request.content)})
        return _ok([0.1, 0.2, 0.3])

    client = _client(handler)
    assert await client.embed("running shoes") == [0.1, 0.2, 0.3]
    assert seen == [{"method": "POST", "path": "/embed", "body": {"text": "running shoes"}}]


@pytest.mark.asyncio
async def test_timeout_maps_to_embedding_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(EmbeddingUnavailableError) as exc_info:
        await _client(handler).embed("q")
    assert exc_info.value.retryable is True
    assert exc_info.value.http_status == 503
    assert isinstance(exc_info.value.cause, httpx.ReadTimeout)


@pytest.mark.asyncio
async def test_connection_error_maps_to_embedding_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(EmbeddingUnavailableError):
        await _client(handler).embed("q")


@pytest.mark.asyncio
async def test_non_success_status_maps_to_embedding_unavailable() -> None:
    client = _client(lambda request: httpx.Response(502, text="bad gateway"))
    with pytest.raises(EmbeddingUnavailableError) as exc_info:
        await client.embed("q")
    assert exc_info.value.detail["status_code"] == 502


@pytest.mark.asyncio
async def test_invalid_json_maps_to_embedding_unavailable() -> None:
    client = _client(lambda request: httpx.Response(200, content=b"not-json"))
    with pytest.raises(EmbeddingUnavailableError):
        await client.embed("q")


@pytest.mark.parametrize(
    "payload",
    [
        [0.1, 0.2],
        {"dimensions": 2},
        {"embedding": "0.1,0.2"},
        {"embedding": []},
        {"embedding": [0.1, "x"]},
        {"embedding": [0.1, True]},
        {"embedding": [0.1, 0.2], "dimensions": 3},
    ],
)
def test_malformed_payloads_rejected(payload: Any) -> None:
    with pytest.raises(EmbeddingUnavailableError):
        parse_embedding_payload(payload)


def test_payload_without_declared_dimensions_accepted() -> None:
    assert parse_embedding_payload({"embedding": [1, 2.5]}) == [1.0, 2.5]


@pytest.mark.asyncio
async def test_verify_dimensions() -> None:
    probes: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        probes.append(json.loads(request.content)["text"])
        return _ok([0.0, 1.0, 0.0])

    assert await _client(handler, dimensions=3).verify_dimensions() == 3
    assert probes == ["test"]

    with pytest.raises(DimensionMismatchError) as exc_info:
        await _client(handler, dimensions=384).verify_dimensions()
    assert exc_info.value.expected == 384
    assert exc_info.value.actual == 3
    assert exc_info.value.http_status == 500
    assert exc_info.value.retryable is False


@pytest.mark.asyncio
async def test_ping() -> None:
    def healthy(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200 if request.url.path == "/health" else 404, json={"status": "ok"})

    def broken(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    assert await _client(healthy).ping() is True
    assert await _client(lambda request: httpx.Response(503)).ping() is False
    assert await _client(broken).ping() is False
