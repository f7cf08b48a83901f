# src/hybrid_search/backend/db/models/legal.py

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..base import Base, TimestampMixin
from .types import EmbeddingVector


class LegalDocumentModel(Base, TimestampMixin):
    """
    [职责] 法律文书（legal 语料）：判例/法规元数据 + content/title/headnote 三路向量。
    [边界] 本服务只读；status 取值由 ingest 决定（例如 good_law / overruled）。
    [上游关系] 外部 ingest 写入；db/fts.py 触发器同步 legal_fts。
    [下游关系] VectorRetriever / KeywordRetriever / StatsRepo 读取；过滤维度见 corpus.LEGAL_CORPUS。
    """

    __tablename__ = "legal_documents"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment="文书ID（自增整数）",
    )

    doc_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        unique=True,
        comment="外部文书编号",  # docstring: 来源系统标识
    )

    doc_type: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        index=True,
        comment="文书类型（case/statute/regulation...）",
    )

    title: Mapped[str] = mapped_column(
        String(1000),
        nullable=False,
        comment="标题",
    )

    citation: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="引用格式",
    )

    jurisdiction: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        index=True,
        comment="司法辖区",
    )

    court: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="法院",
    )

    practice_area: Mapped[Optional[str]] = mapped_column(
        String(128),
        nullable=True,
        index=True,
        comment="业务领域",
    )

    status: Mapped[Optional[str]] = mapped_column(
        String(32),
        nullable=True,
        index=True,
        comment="效力状态（overruled 可被排除）",
    )

    content: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="正文（进入全文索引；结果只展示前 300 字符）",
    )

    content_embedding: Mapped[Optional[List[float]]] = mapped_column(
        EmbeddingVector,
        nullable=True,
        comment="正文向量",
    )

    title_embedding: Mapped[Optional[List[float]]] = mapped_column(
        EmbeddingVector,
        nullable=True,
        comment="标题向量",
    )

    headnote_embedding: Mapped[Optional[List[float]]] = mapped_column(
        EmbeddingVector,
        nullable=True,
        comment="裁判要旨向量",
    )
