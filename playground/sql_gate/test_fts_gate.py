# playground/sql_gate/test_fts_gate.py

"""
[职责] fts gate：验证每个语料的 FTS5 虚表/触发器可幂等创建，触发器随语料表增删改同步，rebuild/status 运维入口可用。
[边界] 只测试 SQL 侧 FTS；BM25 排序与过滤语义由 search_gate/test_keyword_gate 覆盖。
[上游关系] 依赖 db/fts.py + db/models 写入语料表。
[下游关系] pipelines/search/keyword.py 依赖 search_fts() 返回候选集合。
"""

from __future__ import annotations

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from hybrid_search.backend.db.fts import (
    LEGAL_FTS,
    PRODUCT_FTS,
    drop_sqlite_fts,
    ensure_sqlite_fts,
    fts_status,
    rebuild_sqlite_fts,
)
from hybrid_search.backend.db.models import LegalDocumentModel, ProductRecordModel


pytestmark = pytest.mark.sql_gate


async def _fts_doc_ids(session: AsyncSession, fts_table: str, match: str) -> list:
    rows = (
        await session.execute(text(f"SELECT doc_id FROM {fts_table} WHERE {fts_table} MATCH :q ORDER BY doc_id"), {"q": match})
    ).fetchall()
    return [int(r[0]) for r in rows]


@pytest.mark.asyncio
async def test_fts_ensure_is_idempotent_and_creates_triggers(session: AsyncSession) -> None:
    """The engine fixture already ran ensure once; a second run must be a no-op."""
    await ensure_sqlite_fts(session)

    for idx in (PRODUCT_FTS, LEGAL_FTS):
        row = (
            await session.execute(
                text("SELECT name FROM sqlite_master WHERE type='table' AND name=:n"), {"n": idx.fts_table}
            )
        ).fetchone()
        assert row is not None

        trigger_rows = (
            await session.execute(text("SELECT name FROM sqlite_master WHERE type='trigger' AND tbl_name=:t"), {"t": idx.source_table})
        ).fetchall()
        assert set(idx.trigger_names.values()).issubset({r[0] for r in trigger_rows})


@pytest.mark.asyncio
async def test_triggers_sync_insert_update_delete(session: AsyncSession) -> None:
    session.add(ProductRecordModel(id=11, title="Canvas sneakers", description="Casual canvas sneakers"))
    await session.commit()
    assert await _fts_doc_ids(session, PRODUCT_FTS.fts_table, '"sneakers"') == [11]

    row = await session.get(ProductRecordModel, 11)
    row.description = "Casual canvas loafers"
    row.title = "Canvas loafers"
    await session.commit()
    assert await _fts_doc_ids(session, PRODUCT_FTS.fts_table, '"sneakers"') == []
    assert await _fts_doc_ids(session, PRODUCT_FTS.fts_table, '"loafers"') == [11]

    await session.delete(row)
    await session.commit()
    assert await _fts_doc_ids(session, PRODUCT_FTS.fts_table, '"loafers"') == []


@pytest.mark.asyncio
async def test_legal_index_covers_title_and_content(session: AsyncSession) -> None:
    session.add(
        LegalDocumentModel(
            id=21,
            doc_id="case-21",
            doc_type="case",
            title="Marbury v. Madison",
            content="Judicial review established.",
        )
    )
    await session.commit()

    assert await _fts_doc_ids(session, LEGAL_FTS.fts_table, '"marbury"') == [21]
    assert await _fts_doc_ids(session, LEGAL_FTS.fts_table, '"judicial" "review"') == [21]


@pytest.mark.asyncio
async def test_rebuild_and_status(session: AsyncSession, product_dataset, legal_dataset) -> None:
    counts = await rebuild_sqlite_fts(session)
    assert counts == {PRODUCT_FTS.fts_table: 6, LEGAL_FTS.fts_table: 5}  # docstring: 全量重建（含 inactive 记录）

    status = await fts_status(session)
    assert status[PRODUCT_FTS.fts_table]["table_exists"] is True
    assert status[PRODUCT_FTS.fts_table]["fts_count"] == 6
    assert all(status[LEGAL_FTS.fts_table]["triggers"].values())

    await drop_sqlite_fts(session)
    dropped = await fts_status(session)
    assert dropped[PRODUCT_FTS.fts_table]["table_exists"] is False
    assert dropped[PRODUCT_FTS.fts_table]["fts_count"] == -1
    assert not any(dropped[LEGAL_FTS.fts_table]["triggers"].values())
