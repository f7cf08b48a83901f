# src/hybrid_search/backend/db/models/__init__.py

"""
[职责] db.models 聚合导出：集中声明语料表 ORM Models，供 init_db 注册元数据。
[边界] 仅做导入与 __all__ 暴露；不包含业务逻辑。
[上游关系] 依赖 product/legal 模型文件。
[下游关系] engine.init_db / repos / retrievers 导入本模块。
"""

from __future__ import annotations

from ..base import Base
from .legal import LegalDocumentModel
from .product import ProductRecordModel

__all__ = [
    "Base",
    "LegalDocumentModel",
    "ProductRecordModel",
]
