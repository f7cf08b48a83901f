# src/hybrid_search/backend/api/deps.py

"""
[职责] API 依赖装配：提供 SearchService 与 TraceContext 注入。
[边界] 不做业务逻辑；不创建数据库连接（由 SearchService 持有的 sessionmaker 负责）。
[上游关系] FastAPI 路由层调用依赖注入；app lifespan 将 SearchService 放入 app.state。
[下游关系] routers 通过本模块获取依赖实例；测试可 dependency_overrides 替换。
"""

from __future__ import annotations

from fastapi import Request

from hybrid_search.backend.schemas.audit import TraceContext
from hybrid_search.backend.schemas.ids import new_uuid
from hybrid_search.backend.services.search_service import SearchService


def get_search_service(request: Request) -> SearchService:
    """
    [职责] 获取 app 级 SearchService 单例。
    [边界] 未初始化（lifespan 未运行）时抛 RuntimeError，属于装配错误。
    [上游关系] app lifespan 写入 request.app.state.search_service。
    [下游关系] search/health/info/stats 路由。
    """
    service = getattr(request.app.state, "search_service", None)
    if service is None:
        raise RuntimeError("search service is not initialized")
    return service


def get_trace_context(request: Request) -> TraceContext:
    """
    [职责] 获取或创建 TraceContext（优先使用 middleware 注入）。
    [边界] 不写入日志；不校验 UUID 格式。
    [上游关系] middleware 注入 request.state.trace_context。
    [下游关系] routers 将 trace_id/request_id 传给 services。
    """
    existing = getattr(request.state, "trace_context", None)
    if isinstance(existing, TraceContext):
        return existing

    ctx = TraceContext(trace_id=new_uuid(), request_id=new_uuid())  # docstring: 未挂 middleware 时兜底
    request.state.trace_context = ctx
    request.state.trace_id = str(ctx.trace_id)
    request.state.request_id = str(ctx.request_id)
    return ctx

