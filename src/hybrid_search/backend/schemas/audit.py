# src/hybrid_search/backend/schemas/audit.py

"""
[职责] Audit 契约层：TraceContext（trace_id/request_id/parent_request_id），贯穿 HTTP 请求与检索日志。
[边界] 仅标识与轻量 tags；不包含 span 级别细节。
[上游关系] api/middleware.py 根据请求 header 构造。
[下游关系] api/deps.get_trace_context 透传给 services；SearchContext 复用其 id。
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .ids import RequestId, TraceId, UUIDStr, new_uuid


class TraceContext(BaseModel):
    """Per-request trace identifiers; header values win over generated ones."""

    model_config = ConfigDict(extra="allow")

    trace_id: TraceId = Field(default_factory=new_uuid)  # docstring: 全链路追踪ID
    request_id: RequestId = Field(default_factory=new_uuid)  # docstring: 单次 HTTP 请求ID
    parent_request_id: Optional[UUIDStr] = Field(default=None)  # docstring: 上游请求ID（可选）
    tags: Dict[str, Any] = Field(default_factory=dict)  # docstring: 扩展 tags（corpus/user-agent 等）
