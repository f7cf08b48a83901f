# src/hybrid_search/backend/pipelines/base/context.py

"""
[职责] SearchContext：单次检索请求的运行上下文（trace/request id、语料名、计时器与附加元数据）。
[边界] 不持有 session（retrievers 自行从 sessionmaker 打开）；不跨请求共享；不做业务编排。
[上游关系] api 层根据 TraceContextMiddleware 注入的 id 构造；测试可直接 SearchContext.new(...)。
[下游关系] orchestrator 读取 timing 写阶段耗时；logging_.build_log_fields 读取 trace 字段。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from hybrid_search.backend.schemas.ids import UUIDStr, new_uuid

from .timing import TimingCollector


@dataclass
class SearchContext:
    """
    [职责] 为单次检索执行提供 trace 字段与计时器。
    [边界] meta 仅用于可观测性（例如当前阶段），不参与检索语义。
    [上游关系] services/search_service.py 或测试构造。
    [下游关系] SearchOrchestrator.execute。
    """

    corpus: str
    trace_id: UUIDStr = field(default_factory=new_uuid)  # docstring: 链路追踪ID
    request_id: UUIDStr = field(default_factory=new_uuid)  # docstring: 单次请求ID
    timing: TimingCollector = field(default_factory=TimingCollector)
    meta: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def new(
        cls,
        *,
        corpus: str,
        trace_id: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> "SearchContext":
        return cls(
            corpus=str(corpus),
            trace_id=UUIDStr(trace_id) if trace_id else new_uuid(),
            request_id=UUIDStr(request_id) if request_id else new_uuid(),
        )

    def timing_ms(self, *, include_total: bool = True) -> Dict[str, float]:
        return self.timing.to_dict(include_total=include_total)
