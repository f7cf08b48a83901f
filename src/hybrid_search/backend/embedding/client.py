# src/hybrid_search/backend/embedding/client.py

"""
[职责] Embedding client：调用外部 embedding 服务（POST {base_url}/embed），把文本映射为定长向量。
[边界] 不重试；超时/非 2xx/响应畸形统一抛 EmbeddingUnavailableError；维度自检抛 DimensionMismatchError。
[上游关系] services/search_service.py 按语料装配（product 384 维 / legal 768 维）。
[下游关系] SearchOrchestrator 每个请求调用一次 embed()；app lifespan 调用 verify_dimensions()。
"""

from __future__ import annotations

import logging
from numbers import Real
from typing import Any, List, Optional, Protocol

import httpx

from hybrid_search.config import EmbeddingConfig
from hybrid_search.backend.utils.constants import DIMENSION_PROBE_TEXT
from hybrid_search.backend.utils.errors import DimensionMismatchError, EmbeddingUnavailableError
from hybrid_search.backend.utils.logging_ import get_logger, log_event


logger = get_logger("embedding.client")

_EMBED_PATH = "/embed"  # docstring: embedding 接口路径
_HEALTH_PATH = "/health"  # docstring: 健康检查路径


class EmbeddingClient(Protocol):
    async def embed(self, text: str) -> List[float]: ...


def parse_embedding_payload(payload: Any) -> List[float]:
    """
    [职责] 校验并解析 embedding 响应体 {"embedding": [...], "dimensions": n, "model": "..."}。
    [边界] embedding 缺失/非数组/含非数值元素、或 dimensions 与数组长度不一致均视为畸形响应。
    [上游关系] HttpEmbeddingClient.embed 调用。
    [下游关系] 返回 float 列表。
    """
    if not isinstance(payload, dict):
        raise EmbeddingUnavailableError(message="malformed embedding response: body is not an object")
    raw = payload.get("embedding")
    if not isinstance(raw, list):
        raise EmbeddingUnavailableError(message="malformed embedding response: missing or non-array 'embedding'")
    if not raw:
        raise EmbeddingUnavailableError(message="malformed embedding response: empty 'embedding'")
    if any(isinstance(v, bool) or not isinstance(v, Real) for v in raw):
        raise EmbeddingUnavailableError(message="malformed embedding response: non-numeric vector element")

    vector = [float(v) for v in raw]
    declared = payload.get("dimensions")
    if isinstance(declared, int) and not isinstance(declared, bool) and declared != len(vector):
        raise EmbeddingUnavailableError(
            message="malformed embedding response: 'dimensions' disagrees with vector length",
            detail={"dimensions": declared, "length": len(vector)},
        )
    return vector


class HttpEmbeddingClient:
    """
    [职责] httpx.AsyncClient 封装的 embedding 服务客户端。
    [边界] 可注入外部 AsyncClient（测试用 MockTransport）；自建的 client 由 aclose() 释放。
    [上游关系] services 构造；EmbeddingConfig 提供 base_url/dimensions/timeout。
    [下游关系] orchestrator.embed / health.ping / lifespan.verify_dimensions。
    """

    def __init__(
        self,
        *,
        config: EmbeddingConfig,
        client: Optional[httpx.AsyncClient] = None,
        corpus: str = "",
    ) -> None:
        self._config = config
        self._corpus = str(corpus or "")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=str(config.base_url).rstrip("/"),
            timeout=httpx.Timeout(float(config.timeout_s)),
        )

    @property
    def dimensions(self) -> int:
        return int(self._config.dimensions)

    async def embed(self, text: str) -> List[float]:
        """
        [职责] 单次 embedding 调用。
        [边界] 不重试；错误信息不包含原始查询文本。
        [上游关系] orchestrator / verify_dimensions。
        [下游关系] 返回定长 float 向量（长度校验由调用方负责）。
        """
        try:
            resp = await self._client.post(_EMBED_PATH, json={"text": text})
        except httpx.TimeoutException as exc:
            raise EmbeddingUnavailableError(
                message="embedding service timed out",
                detail={"corpus": self._corpus, "timeout_s": float(self._config.timeout_s)},
                cause=exc,
            ) from exc
        except httpx.HTTPError as exc:
            raise EmbeddingUnavailableError(
                message=f"embedding service request failed: {exc.__class__.__name__}",
                detail={"corpus": self._corpus},
                cause=exc,
            ) from exc

        if not resp.is_success:
            raise EmbeddingUnavailableError(
                message=f"embedding service returned status {resp.status_code}",
                detail={"corpus": self._corpus, "status_code": resp.status_code},
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise EmbeddingUnavailableError(
                message="malformed embedding response: invalid JSON",
                detail={"corpus": self._corpus},
                cause=exc,
            ) from exc
        return parse_embedding_payload(payload)

    async def verify_dimensions(self) -> int:
        """
        [职责] 启动自检：embed("test") 一次并比对配置维度。
        [边界] 不一致抛 DimensionMismatchError（致命配置错误）；服务不可用抛 EmbeddingUnavailableError。
        [上游关系] app lifespan / services.verify_embedding_dimensions。
        [下游关系] 启动成功或中止。
        """
        vector = await self.embed(DIMENSION_PROBE_TEXT)
        if len(vector) != self.dimensions:
            raise DimensionMismatchError(expected=self.dimensions, actual=len(vector), corpus=self._corpus)
        log_event(
            logger,
            logging.INFO,
            "embedding.dimensions_verified",
            fields={"corpus": self._corpus, "dimensions": len(vector)},
        )
        return len(vector)

    async def ping(self) -> bool:
        """GET {base_url}/health; any transport error or non-2xx counts as down."""
        try:
            resp = await self._client.get(_HEALTH_PATH)
        except httpx.HTTPError:
            return False
        return resp.is_success

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
