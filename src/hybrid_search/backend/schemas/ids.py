# src/hybrid_search/backend/schemas/ids.py

"""
[职责] ID 契约层：trace/request ID 的类型别名与生成策略（UUID v4 string）。
[边界] 不依赖 ORM；语料文档主键为整数，不在此定义。
[上游关系] 无（纯工具层）。
[下游关系] api/middleware、pipelines/base/context 生成与传递 trace_id/request_id。
"""

from __future__ import annotations

from typing import NewType
from uuid import uuid4


UUIDStr = NewType("UUIDStr", str)  # docstring: 统一 UUID 字符串类型（运行时仍为 str）

TraceId = UUIDStr  # docstring: trace_id（跨请求链路）
RequestId = UUIDStr  # docstring: request_id（单次请求）


def new_uuid() -> UUIDStr:
    """Generate UUID v4 as string."""
    return UUIDStr(str(uuid4()))

