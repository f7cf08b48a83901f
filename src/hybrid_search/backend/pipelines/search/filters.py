# src/hybrid_search/backend/pipelines/search/filters.py
"""
[职责] FilterSpec：将请求中的元数据过滤值编译为类型化谓词（Equals / NotEquals），并翻译为 SQLAlchemy 子句。
[边界] 仅支持合取（AND）；唯一的否定形式是 status 排除过滤器；空白值视为“无过滤”。
[上游关系] orchestrator 在任何 I/O 之前调用 build_predicates()。
[下游关系] vector.py / keyword.py 使用同一组谓词调用 to_sqlalchemy()，保证两路候选集过滤一致。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from sqlalchemy import or_
from sqlalchemy.sql.elements import ColumnElement

from hybrid_search.backend.pipelines.search.types import StatusFilterPolicy
from hybrid_search.backend.utils.errors import InvalidQueryError


STATUS_FILTER_KEY = "status_filter"  # docstring: 请求中 status 过滤器的名称


@dataclass(frozen=True)
class Equals:
    """column == value"""

    column: str
    value: str


@dataclass(frozen=True)
class NotEquals:
    """column != value（column 为 NULL 的记录保留）"""

    column: str
    value: str


Predicate = Union[Equals, NotEquals]


def _normalize_value(value: Any) -> Optional[str]:
    """Blank/None -> None; everything else -> stripped string."""
    if value is None:
        return None
    s = str(value).strip()
    return s or None


@dataclass(frozen=True)
class FilterSpec:
    """
    [职责] 请求级过滤值集合：filter name -> expected value（已去空白）。
    [边界] 不感知语料列名；编译时才与语料的过滤词表对齐。
    [上游关系] SearchRequest.filters 通过 from_mapping 构造。
    [下游关系] build_predicates 编译为谓词。
    """

    values: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]]) -> "FilterSpec":
        values: Dict[str, str] = {}
        for key, value in (raw or {}).items():
            name = str(key or "").strip()
            normalized = _normalize_value(value)
            if name and normalized is not None:
                values[name] = normalized  # docstring: 空白值不参与过滤
        return cls(values=values)

    def is_empty(self) -> bool:
        return not self.values

    def to_dict(self) -> Dict[str, str]:
        return dict(self.values)


def build_predicates(
    spec: FilterSpec,
    *,
    filter_columns: Mapping[str, str],
    status_column: Optional[str] = None,
    exclusions: Optional[Mapping[str, str]] = None,
    policy: StatusFilterPolicy = StatusFilterPolicy.EQUALITY_FALLBACK,
) -> Tuple[Predicate, ...]:
    """
    [职责] 将 FilterSpec 编译为谓词元组（按 filter name 排序，保证确定性）。
    [边界] 未知过滤名、语料不支持 status 过滤、exclusion_only 下的非排除取值均抛 InvalidQueryError。
    [上游关系] orchestrator 校验阶段调用。
    [下游关系] to_sqlalchemy 翻译为 WHERE 子句。
    """
    exclusion_map = dict(exclusions or {})
    predicates: List[Predicate] = []

    for name in sorted(spec.values):
        value = spec.values[name]

        if name == STATUS_FILTER_KEY:
            if not status_column:
                raise InvalidQueryError(
                    message="status filter is not supported for this corpus",
                    detail={"filter": name},
                )
            excluded = exclusion_map.get(value.lower())
            if excluded is not None:
                predicates.append(NotEquals(column=status_column, value=excluded))
                continue
            if policy is StatusFilterPolicy.EXCLUSION_ONLY:
                raise InvalidQueryError(
                    message="unsupported status filter value",
                    detail={"filter": name, "value": value, "allowed": sorted(exclusion_map)},
                )
            predicates.append(Equals(column=status_column, value=value))  # docstring: 其余取值按等值过滤
            continue

        col = filter_columns.get(name)
        if col is None:
            allowed = sorted(filter_columns)
            if status_column:
                allowed.append(STATUS_FILTER_KEY)
            raise InvalidQueryError(
                message=f"unknown filter: {name}",
                detail={"filter": name, "allowed": allowed},
            )
        predicates.append(Equals(column=col, value=value))

    return tuple(predicates)


def to_sqlalchemy(predicates: Tuple[Predicate, ...], model: Any) -> List[ColumnElement[bool]]:
    """
    [职责] 谓词 -> SQLAlchemy 绑定参数子句（无字符串拼接）。
    [边界] 列名必须是 model 上的映射属性；否则抛 AttributeError（配置错误）。
    [上游关系] VectorRetriever / KeywordRetriever / StatsRepo 调用。
    [下游关系] select(...).where(*clauses)。
    """
    clauses: List[ColumnElement[bool]] = []
    for pred in predicates:
        col = getattr(model, pred.column)
        if isinstance(pred, Equals):
            clauses.append(col == pred.value)
        elif isinstance(pred, NotEquals):
            clauses.append(or_(col.is_(None), col != pred.value))
        else:  # pragma: no cover - Predicate 为闭合联合
            raise TypeError(f"unsupported predicate: {pred!r}")
    return clauses
