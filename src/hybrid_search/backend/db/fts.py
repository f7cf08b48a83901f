# src/hybrid_search/backend/db/fts.py

"""
[职责] SQLite FTS5 全文索引：为两个语料表维护 FTS 虚表与同步触发器，并提供带过滤的 bm25 检索。
[边界] 仅实现 SQLite FTS5；MATCH 表达式由 pipelines/search/keyword.py 构造；过滤条件以 SQLAlchemy 子句传入。
[上游关系] 外部 ingest 写入 ingested_records / legal_documents；触发器自动同步 FTS。
[下游关系] KeywordRetriever 调用 search_fts() 获取候选；scripts/init_db.py 调用 ensure/rebuild。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import column, func, literal_column, select, table, text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement


# 说明：
# - FTS 表使用独立的 doc_id UNINDEXED 列指向语料表主键，title/body 两列参与倒排索引。
# - INSERT/UPDATE/DELETE 触发器保持同步；过滤走 join + where。
# - porter 词干 + unicode61 分词，近似 plainto_tsquery('english', ...) 的匹配行为。


@dataclass(frozen=True)
class FtsIndex:
    """FTS5 virtual table bound to one corpus table."""

    fts_table: str  # docstring: FTS 虚表名
    source_table: str  # docstring: 语料表名
    title_column: str  # docstring: 进入 title 列的源字段
    body_column: str  # docstring: 进入 body 列的源字段

    @property
    def trigger_names(self) -> Dict[str, str]:
        return {
            "insert": f"{self.source_table}_fts_ai",
            "delete": f"{self.source_table}_fts_ad",
            "update": f"{self.source_table}_fts_au",
        }


PRODUCT_FTS = FtsIndex(
    fts_table="product_fts",
    source_table="ingested_records",
    title_column="title",
    body_column="description",
)

LEGAL_FTS = FtsIndex(
    fts_table="legal_fts",
    source_table="legal_documents",
    title_column="title",
    body_column="content",
)

FTS_INDEXES = (PRODUCT_FTS, LEGAL_FTS)  # docstring: 全部语料的 FTS 索引


@dataclass(frozen=True)
class KeywordHit:
    """Keyword search hit (DB-side)."""

    doc_id: int  # docstring: 语料表主键
    bm25: float  # docstring: FTS5 bm25 原始值（越小越相关，通常为负数）
    row: Any  # docstring: 语料 ORM 对象（用于展示元数据）


def _resolve(indexes: Optional[Sequence[FtsIndex]]) -> Sequence[FtsIndex]:
    return tuple(indexes) if indexes else FTS_INDEXES


async def ensure_sqlite_fts(session: AsyncSession, *, indexes: Optional[Sequence[FtsIndex]] = None) -> None:
    """
    Ensure SQLite FTS5 structures exist.

    Creates per corpus:
      - <corpus>_fts virtual table
      - insert/delete/update triggers syncing from the corpus table
    """  # docstring: 应在 init_db 之后调用一次
    for idx in _resolve(indexes):
        trig = idx.trigger_names
        title_new = f"coalesce(new.{idx.title_column}, '')"
        body_new = f"coalesce(new.{idx.body_column}, '')"

        await session.execute(
            text(
                f"""
                CREATE VIRTUAL TABLE IF NOT EXISTS {idx.fts_table}
                USING fts5(
                  doc_id UNINDEXED,
                  title,
                  body,
                  tokenize = 'porter unicode61'
                );
                """
            )
        )
        await session.execute(
            text(
                f"""
                CREATE TRIGGER IF NOT EXISTS {trig["insert"]} AFTER INSERT ON {idx.source_table} BEGIN
                  INSERT INTO {idx.fts_table}(doc_id, title, body) VALUES (new.id, {title_new}, {body_new});
                END;
                """
            )
        )
        await session.execute(
            text(
                f"""
                CREATE TRIGGER IF NOT EXISTS {trig["delete"]} AFTER DELETE ON {idx.source_table} BEGIN
                  DELETE FROM {idx.fts_table} WHERE doc_id = old.id;
                END;
                """
            )
        )
        await session.execute(
            text(
                f"""
                CREATE TRIGGER IF NOT EXISTS {trig["update"]}
                AFTER UPDATE OF {idx.title_column}, {idx.body_column} ON {idx.source_table} BEGIN
                  UPDATE {idx.fts_table} SET title = {title_new}, body = {body_new} WHERE doc_id = new.id;
                END;
                """
            )
        )

    await session.commit()  # docstring: DDL/trigger 需要提交以生效


async def drop_sqlite_fts(session: AsyncSession, *, indexes: Optional[Sequence[FtsIndex]] = None) -> None:
    """Drop triggers and FTS virtual tables (idempotent)."""
    for idx in _resolve(indexes):
        for name in idx.trigger_names.values():
            await session.execute(text(f"DROP TRIGGER IF EXISTS {name};"))
        await session.execute(text(f"DROP TABLE IF EXISTS {idx.fts_table};"))
    await session.commit()


async def rebuild_sqlite_fts(session: AsyncSession, *, indexes: Optional[Sequence[FtsIndex]] = None) -> Dict[str, int]:
    """
    Rebuild FTS content from the corpus tables.

    Use cases:
      - rows bulk-loaded before the triggers existed
    """  # docstring: 运维/修复工具
    counts: Dict[str, int] = {}
    for idx in _resolve(indexes):
        await session.execute(text(f"DELETE FROM {idx.fts_table};"))
        await session.execute(
            text(
                f"""
                INSERT INTO {idx.fts_table}(doc_id, title, body)
                SELECT id, coalesce({idx.title_column}, ''), coalesce({idx.body_column}, '')
                FROM {idx.source_table};
                """
            )
        )
        n = (await session.execute(text(f"SELECT COUNT(*) FROM {idx.fts_table}"))).scalar()
        counts[idx.fts_table] = int(n or 0)
    await session.commit()
    return counts


async def fts_status(session: AsyncSession, *, indexes: Optional[Sequence[FtsIndex]] = None) -> Dict[str, Any]:
    """Report table/trigger existence and row counts for each FTS index."""
    out: Dict[str, Any] = {}
    for idx in _resolve(indexes):
        names = [idx.fts_table, *idx.trigger_names.values()]
        rows = (
            await session.execute(
                select(column("name")).select_from(table("sqlite_master")).where(column("name").in_(names))
            )
        ).all()
        present = {r[0] for r in rows}
        fts_count = -1
        if idx.fts_table in present:
            fts_count = int((await session.execute(text(f"SELECT COUNT(*) FROM {idx.fts_table}"))).scalar() or 0)
        out[idx.fts_table] = {
            "table_exists": idx.fts_table in present,
            "triggers": {name: name in present for name in idx.trigger_names.values()},
            "fts_count": fts_count,
        }
    return out


async def search_fts(
    session: AsyncSession,
    *,
    index: FtsIndex,
    model: Any,
    match_query: str,
    limit: int,
    where: Sequence[ColumnElement[bool]] = (),
) -> List[KeywordHit]:
    """
    SQLite FTS5 search joined back to the corpus table.

    Order: bm25 ASC (best first), then corpus id ASC.
    """  # docstring: keyword 召回的 DB 入口
    if not match_query.strip() or limit <= 0:
        return []

    fts = table(index.fts_table, column("doc_id"))
    fts_ref = literal_column(index.fts_table)
    bm25 = func.bm25(fts_ref).label("bm25")

    stmt = (
        select(model, bm25)
        .select_from(fts)
        .join(model, model.id == fts.c.doc_id)
        .where(fts_ref.op("MATCH")(match_query))
        .where(*where)
        .order_by(bm25.asc(), model.id.asc())
        .limit(int(limit))
    )

    rows = (await session.execute(stmt)).all()
    return [KeywordHit(doc_id=int(r[0].id), bm25=float(r[1] or 0.0), row=r[0]) for r in rows]
