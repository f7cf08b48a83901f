# src/hybrid_search/backend/db/models/product.py

from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..base import Base, TimestampMixin
from .types import EmbeddingVector


class ProductRecordModel(Base, TimestampMixin):
    """
    [职责] 通用产品记录（product 语料）：展示字段 + content/title 两路向量。
    [边界] 本服务只读；写入由外部 ingest 进程负责。仅 status=active 的记录参与检索。
    [上游关系] 外部 ingest 写入；db/fts.py 触发器同步 product_fts。
    [下游关系] VectorRetriever / KeywordRetriever / StatsRepo 读取。
    """

    __tablename__ = "ingested_records"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment="记录ID（自增整数）",  # docstring: 排序平局时的确定性次序
    )

    title: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        comment="标题",
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="描述（与 title 一起进入全文索引）",
    )

    category: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="类目（过滤与统计维度）",
    )

    tags: Mapped[Optional[List[str]]] = mapped_column(
        JSON,
        nullable=True,
        comment="标签列表",
    )

    raw_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON,
        nullable=True,
        comment="原始记录快照",  # docstring: 结果中原样透传
    )

    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default="active",
        index=True,
        comment="记录状态（active 才可检索）",
    )

    content_embedding: Mapped[Optional[List[float]]] = mapped_column(
        EmbeddingVector,
        nullable=True,
        comment="内容向量（title+description）",
    )

    title_embedding: Mapped[Optional[List[float]]] = mapped_column(
        EmbeddingVector,
        nullable=True,
        comment="标题向量",
    )
