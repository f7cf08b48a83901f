# src/hybrid_search/backend/db/base.py

"""
[职责] ORM 基座：DeclarativeBase 与通用时间戳 mixin。
[边界] 不定义业务表；不创建 engine。
[上游关系] db/models/* 继承 Base/TimestampMixin。
[下游关系] engine.init_db 通过 Base.metadata 建表。
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base shared by all corpus tables."""


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="创建时间",  # docstring: 由 DB 写入
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        comment="更新时间",  # docstring: 外部 ingest 更新时刷新
    )
