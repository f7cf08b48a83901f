# playground/sql_gate/test_init_db_script_gate.py

"""
[职责] init_db 脚本 gate：验证 CLI 在临时库上完成建表 + FTS 初始化，并能输出 --check / --json 结果。
[边界] 直接调用 main(argv)；不启动子进程。
[上游关系] backend/scripts/init_db.py。
[下游关系] 部署/本地开发初始化流程。
"""

from __future__ import annotations

import json

import pytest

from hybrid_search.backend.scripts.init_db import main


pytestmark = pytest.mark.sql_gate


def test_init_db_creates_schema_and_fts(tmp_path, capsys) -> None:
    url = f"sqlite+aiosqlite:///{tmp_path / 'init_gate.db'}"

    assert main(["--db-url", url, "--check", "--json"]) == 0
    result = json.loads(capsys.readouterr().out.strip().splitlines()[-1])

    assert result["ok"] is True
    assert result["created"] is True
    assert result["fts"]["ensured"] is True
    assert result["fts"]["status"]["product_fts"]["table_exists"] is True
    assert result["fts"]["status"]["legal_fts"]["fts_count"] == 0
    assert result["indexed_documents"] == {"product": 0, "legal": 0}


def test_init_db_drop_and_rebuild(tmp_path, capsys) -> None:
    url = f"sqlite+aiosqlite:///{tmp_path / 'init_gate.db'}"
    assert main(["--db-url", url]) == 0
    capsys.readouterr()

    assert main(["--db-url", url, "--drop", "--rebuild-fts"]) == 0
    out = capsys.readouterr().out
    assert "[init_db] status=ok" in out
    assert "dropped=True" in out
    assert "'product_fts': 0" in out


def test_init_db_reports_failure(tmp_path, capsys) -> None:
    url = f"sqlite+aiosqlite:///{tmp_path / 'init_gate.db'}"
    assert main(["--db-url", url, "--no-fts", "--rebuild-fts", "--json"]) == 1  # docstring: 无 FTS 表时重建失败
    result = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert result["ok"] is False
    assert result["error"]
