# src/hybrid_search/backend/scripts/init_db.py

"""
[职责] 初始化检索数据库：create_all（可选 drop）+ 每个语料的 SQLite FTS5 虚表与同步触发器，可选重建与状态检查。
[边界] 不写入业务数据；不调用 embedding 服务；幂等可重复执行。
[上游关系] 本地开发/CI/部署脚本调用；依赖 db.engine 与 db.fts。
[下游关系] keyword 召回依赖 product_fts / legal_fts；vector 召回依赖语料表。
"""

from __future__ import annotations

import argparse
import asyncio
import json
import time
from typing import Any, Dict, Optional, Sequence

from hybrid_search.backend.db.engine import create_engine, create_sessionmaker, drop_db, init_db
from hybrid_search.backend.db.fts import drop_sqlite_fts, ensure_sqlite_fts, fts_status, rebuild_sqlite_fts
from hybrid_search.backend.db.repo import StatsRepo
from hybrid_search.backend.pipelines.search.corpus import CORPORA


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Initialize search schema and SQLite FTS5 indexes.")
    parser.add_argument("--db-url", dest="db_url", default=None)  # docstring: 显式 DB 连接串
    parser.add_argument("--drop", action="store_true")  # docstring: 先 drop（含 FTS）再 create
    parser.add_argument("--no-fts", dest="fts", action="store_false")  # docstring: 跳过 FTS 初始化
    parser.add_argument("--rebuild-fts", action="store_true")  # docstring: 从语料表重建 FTS 内容
    parser.add_argument("--check", action="store_true")  # docstring: 输出 FTS 状态与已索引文档数
    # docstring: SQL echo 三态开关：默认 None（由 engine/环境决定）
    echo_group = parser.add_mutually_exclusive_group()
    echo_group.add_argument("--echo", dest="echo", action="store_true", default=None)
    echo_group.add_argument("--no-echo", dest="echo", action="store_false")
    parser.add_argument("--json", action="store_true")  # docstring: 仅输出 JSON 结果
    return parser


async def _run_async(
    *,
    db_url: Optional[str],
    drop: bool,
    fts: bool,
    rebuild_fts: bool,
    check: bool,
    echo: Optional[bool],
) -> Dict[str, Any]:
    """
    [职责] 执行初始化主流程并返回 JSON-safe 结果。
    [边界] 异常转为 result["error"]；引擎总是 dispose。
    [上游关系] main。
    [下游关系] _print_summary。
    """
    start_ms = time.perf_counter() * 1000.0
    engine = create_engine(url=db_url, echo=echo)
    Session = create_sessionmaker(engine)
    result: Dict[str, Any] = {
        "ok": True,
        "db_url": str(engine.url),
        "dropped": False,
        "created": False,
        "fts": {"ensured": False, "rebuilt": None, "status": None},
        "indexed_documents": None,
        "duration_ms": 0.0,
        "error": None,
    }
    try:
        if drop:
            async with Session() as session:
                await drop_sqlite_fts(session)  # docstring: 先删触发器，再删语料表
            await drop_db(engine=engine)
            result["dropped"] = True

        await init_db(engine=engine)
        result["created"] = True

        async with Session() as session:
            if fts:
                await ensure_sqlite_fts(session)
                result["fts"]["ensured"] = True
            if rebuild_fts:
                result["fts"]["rebuilt"] = await rebuild_sqlite_fts(session)
            if check:
                result["fts"]["status"] = await fts_status(session)
                repo = StatsRepo(session)
                result["indexed_documents"] = {
                    name: await repo.get_indexed_count(corpus) for name, corpus in CORPORA.items()
                }
    except Exception as exc:
        result["ok"] = False
        result["error"] = f"{exc.__class__.__name__}: {exc}"
    finally:
        await engine.dispose()
        result["duration_ms"] = round(time.perf_counter() * 1000.0 - start_ms, 2)
    return result


def _print_summary(*, result: Dict[str, Any], as_json: bool) -> None:
    if as_json:
        print(json.dumps(result, ensure_ascii=True, default=str))
        return
    status = "ok" if result.get("ok") else "failed"
    print(f"[init_db] status={status}")
    print(f"[init_db] db_url={result.get('db_url')}")
    print(f"[init_db] dropped={result.get('dropped')} created={result.get('created')}")
    print(f"[init_db] fts={result.get('fts')}")
    if result.get("indexed_documents") is not None:
        print(f"[init_db] indexed_documents={result.get('indexed_documents')}")
    if result.get("error"):
        print(f"[init_db] error={result.get('error')}")
    print(f"[init_db] duration_ms={result.get('duration_ms')}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point; non-zero exit code on failure."""
    args = _build_parser().parse_args(list(argv) if argv is not None else None)
    result = asyncio.run(
        _run_async(
            db_url=args.db_url,
            drop=bool(args.drop),
            fts=bool(args.fts),
            rebuild_fts=bool(args.rebuild_fts),
            check=bool(args.check),
            echo=args.echo,
        )
    )
    _print_summary(result=result, as_json=bool(args.json))
    return 0 if result.get("ok") else 1


if __name__ == "__main__":
    raise SystemExit(main())
