# src/hybrid_search/backend/db/repo/__init__.py

"""
[职责] db.repo 聚合导出：集中暴露只读仓储对象，供 service/api 层调用。
[边界] 仅做导入与 __all__ 暴露。
[上游关系] stats_repo。
[下游关系] services / api routers / gate tests。
"""

from __future__ import annotations

from .stats_repo import StatsRepo

__all__ = ["StatsRepo"]
