# src/hybrid_search/backend/api/app.py

"""
[职责] FastAPI 应用工厂：装配 middleware / routers / exception handlers，并在 lifespan 中构造 SearchService 与执行维度自检。
[边界] 不包含业务逻辑；启动自检失败（DimensionMismatchError）直接中止启动，不吞异常。
[上游关系] uvicorn --factory hybrid_search.backend.api.app:create_app；测试直接调用 create_app(service=...)。
[下游关系] routers/search.py、routers/health.py、routers/stats.py。
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hybrid_search.config import Settings, settings
from hybrid_search.backend.api.errors import to_json_response
from hybrid_search.backend.api.middleware import TraceContextMiddleware
from hybrid_search.backend.api.routers.health import router as health_router
from hybrid_search.backend.api.routers.search import router as search_router
from hybrid_search.backend.api.routers.stats import router as stats_router
from hybrid_search.backend.services.search_service import SearchService
from hybrid_search.backend.utils.constants import SERVICE_NAME, SERVICE_VERSION
from hybrid_search.backend.utils.errors import BadRequestError, DomainError
from hybrid_search.backend.utils.logging_ import configure_logging, get_logger, log_event


logger = get_logger("api.app")


def _trace_ids(request: Request) -> Dict[str, Optional[str]]:
    return {
        "trace_id": getattr(request.state, "trace_id", None),
        "request_id": getattr(request.state, "request_id", None),
    }


def _validation_detail(exc: RequestValidationError) -> Dict[str, Any]:
    """Reduce pydantic errors to a JSON-safe list (loc/msg/type)."""
    errors: List[Dict[str, Any]] = []
    for err in exc.errors():
        errors.append(
            {
                "loc": [str(p) for p in err.get("loc", ())],
                "msg": str(err.get("msg", "")),
                "type": str(err.get("type", "")),
            }
        )
    return {"errors": errors}


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def _domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        ids = _trace_ids(request)
        log_event(
            logger,
            logging.WARNING if exc.http_status < 500 else logging.ERROR,
            "http.domain_error",
            context=ids,
            fields={"path": request.url.path, "error_code": exc.error_code, "status": exc.http_status},
        )
        return to_json_response(exc, **ids)

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        error = BadRequestError(message="request validation failed", detail=_validation_detail(exc))
        return to_json_response(error, **_trace_ids(request))

    @app.exception_handler(Exception)
    async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        ids = _trace_ids(request)
        log_event(
            logger,
            logging.ERROR,
            "http.unhandled_error",
            context=ids,
            fields={"path": request.url.path, "error": exc.__class__.__name__},
            exc_info=exc,
        )
        return to_json_response(exc, **ids)


def create_app(
    *,
    app_settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    service: Optional[SearchService] = None,
    verify_dimensions: Optional[bool] = None,
) -> FastAPI:
    """
    [职责] 构造 FastAPI 应用。
    [边界] 注入的 service 由调用方负责关闭；自建的 service 在 lifespan 结束时关闭。
    [上游关系] uvicorn / 测试。
    [下游关系] app.state.search_service 供 deps.get_search_service 读取。
    """
    s = app_settings or settings
    verify = s.VERIFY_EMBEDDING_DIMENSIONS if verify_dimensions is None else bool(verify_dimensions)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(level=s.LOG_LEVEL)
        owned = service is None
        if owned:
            from hybrid_search.backend.db.engine import SessionLocal  # docstring: 延迟导入全局引擎

            svc = SearchService.from_settings(s, session_factory=session_factory or SessionLocal)
        else:
            svc = service
        app.state.search_service = svc
        try:
            if verify:
                verified = await svc.verify_embedding_dimensions()  # docstring: 维度不一致 -> 中止启动
                log_event(logger, logging.INFO, "app.self_check_passed", fields={"dimensions": verified})
            yield
        finally:
            if owned:
                await svc.aclose()

    app = FastAPI(title=SERVICE_NAME, version=SERVICE_VERSION, lifespan=lifespan)
    if service is not None:
        app.state.search_service = service  # docstring: 未运行 lifespan 的测试也可直接使用
    app.add_middleware(TraceContextMiddleware)
    _register_exception_handlers(app)
    app.include_router(search_router)
    app.include_router(health_router)
    app.include_router(stats_router)
    return app
