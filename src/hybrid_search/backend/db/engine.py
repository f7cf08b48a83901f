# src/hybrid_search/backend/db/engine.py

"""
[职责] 数据库引擎与会话工厂：创建 AsyncEngine / async_sessionmaker（全局 ENGINE / SessionLocal 供应用运行时使用）。
[边界] 不定义 ORM Model；不编排事务；不负责迁移。
[上游关系] config.py 提供 HYBRID_SEARCH_DATABASE_URL；脚本/测试可显式传入 url。
[下游关系] services、repos、retrievers 依赖 sessionmaker；scripts/init_db 与测试创建独立引擎。
"""

from __future__ import annotations

import os
from pathlib import Path

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .base import Base


def _settings_db_url() -> str | None:
    """Read the DB URL from pydantic Settings (.env supported)."""
    from hybrid_search.config import settings as _settings

    v = str(getattr(_settings, "HYBRID_SEARCH_DATABASE_URL", "") or "").strip()
    return v or None


def resolve_db_url(override: str | None = None) -> str:
    """
    Resolve database URL.

    Priority:
        1) explicit override
        2) env: HYBRID_SEARCH_DATABASE_URL / DATABASE_URL
        3) settings default (repo-root/.local/hybrid_search.db)
    """
    if override:
        return override
    for key in ("HYBRID_SEARCH_DATABASE_URL", "DATABASE_URL"):
        env_url = os.getenv(key, "").strip()
        if env_url:
            return env_url
    s_url = _settings_db_url()
    if s_url:
        return s_url
    raise RuntimeError("database url is not configured")


def _ensure_sqlite_parent(db_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    url = make_url(db_url)
    if not url.drivername.startswith("sqlite"):
        return
    database = str(url.database or "")
    if not database or database == ":memory:":
        return
    Path(database).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


def create_engine(*, url: str | None = None, echo: bool | None = None) -> AsyncEngine:
    """
    Create AsyncEngine.

    NOTE:
      - SQLite runs through the aiosqlite driver; FTS5 must be compiled into the sqlite library.
    """  # docstring: 生产/测试复用；测试传入临时 sqlite 文件
    db_url = resolve_db_url(url)
    _ensure_sqlite_parent(db_url)
    db_echo = echo if echo is not None else (os.getenv("SQL_ECHO", "0") == "1")  # docstring: SQL 打印开关

    return create_async_engine(
        db_url,
        echo=db_echo,
        future=True,
        pool_pre_ping=True,
    )


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create async sessionmaker (expire_on_commit=False)."""
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


# --- global singletons (app runtime) ---
ENGINE: AsyncEngine = create_engine()  # docstring: 默认全局引擎
SessionLocal: async_sessionmaker[AsyncSession] = create_sessionmaker(ENGINE)  # docstring: 默认会话工厂


async def init_db(*, engine: AsyncEngine | None = None) -> None:
    """
    Initialize database schema (create_all).

    Must import models to register tables in Base.metadata.
    """
    from . import models  # noqa: F401  # docstring: 强制注册 ORM 表

    eng = engine or ENGINE
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db(*, engine: AsyncEngine | None = None) -> None:
    """Drop all ORM tables (local/dev/tests only)."""
    from . import models  # noqa: F401

    eng = engine or ENGINE
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
