# src/hybrid_search/backend/api/schemas_http/_common.py

"""
[职责] HTTP Schema 公共组件：定义 ErrorResponse 与通用 ID 类型，作为 API 契约基础。
[边界] 仅描述 HTTP 输入/输出结构；不负责 trace 注入、异常映射或业务逻辑。
[上游关系] api/middleware 注入 trace/request；api/errors 将 DomainError 映射到 ErrorResponse。
[下游关系] api/schemas_http/search.py 与各 router 复用本模块结构。
"""

from __future__ import annotations

from typing import Any, Dict, Literal, NewType, Optional

from pydantic import BaseModel, ConfigDict, Field


UUIDStr = NewType("UUIDStr", str)  # docstring: 通用 UUID 字符串类型（运行时仍为 str）

TraceId = UUIDStr  # docstring: trace_id（跨请求链路）
RequestId = UUIDStr  # docstring: request_id（单次请求）

ErrorCode = Literal[
    "bad_request",
    "internal_error",
    "search.invalid_query",
    "search.embedding_unavailable",
    "search.retriever_unavailable",
    "search.dimension_mismatch",
]  # docstring: HTTP 层标准错误码

ErrorDetail = Dict[str, Any]  # docstring: ErrorResponse.error.detail 结构（必须 JSON-safe）


class ErrorInfo(BaseModel):
    """
    [职责] ErrorInfo：统一错误载体（code/message/detail/trace_id/request_id）。
    [边界] 不包含 HTTP status/retryable；这些由 utils/errors.py 决定。
    [上游关系] api/errors.py 将 DomainError 映射为 ErrorInfo。
    [下游关系] 客户端统一处理错误结构。
    """

    model_config = ConfigDict(extra="forbid")  # docstring: 锁死错误字段，避免 drift

    code: ErrorCode = Field(...)  # docstring: 错误码（标准枚举）
    message: str = Field(..., min_length=1)  # docstring: 人类可读错误信息
    detail: ErrorDetail = Field(default_factory=dict)  # docstring: 结构化细节（可为空）
    trace_id: TraceId = Field(...)  # docstring: 全链路追踪ID（由 middleware 注入）
    request_id: Optional[RequestId] = Field(default=None)  # docstring: 单次请求ID


class ErrorResponse(BaseModel):
    """HTTP error envelope: {"error": {...}}."""

    model_config = ConfigDict(extra="forbid")  # docstring: 保持响应结构稳定

    error: ErrorInfo = Field(...)  # docstring: 错误主体
