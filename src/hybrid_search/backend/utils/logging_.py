# src/hybrid_search/backend/utils/logging_.py

"""
[职责] 结构化日志：统一 logger 命名（hybrid_search.*）、JSON 格式化与安全输出 helper。
[边界] 不绑定日志后端；不记录原始查询全文（仅 hash + 截断预览）。
[上游关系] orchestrator/services/api 通过 get_logger/log_event 记录关键节点。
[下游关系] stdout 日志收集系统按 trace_id/request_id/corpus 检索。
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Union


DEFAULT_LOGGER_NAME = "hybrid_search"  # docstring: 统一 logger 根名称
DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_MAX_TEXT_LEN = 160  # docstring: 安全文本预览长度
_HANDLER_NAME = "structured_json"

TRACE_FIELD_KEYS = (
    "trace_id",
    "request_id",
    "parent_request_id",
    "corpus",
)  # docstring: 从上下文自动提取的字段

_LOG_RECORD_RESERVED = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys() | {"message", "asctime"}
)  # docstring: LogRecord 内置字段（不作为 extra 输出）


class StructuredLogFormatter(logging.Formatter):
    """
    [职责] 将 LogRecord 转换为单行 JSON（基础字段 + extra）。
    [边界] 不做敏感字段识别；调用方负责避免写入原文。
    [上游关系] configure_logging 挂载到 handler。
    [下游关系] 日志收集系统解析 JSON。
    """

    def __init__(self, *, ensure_ascii: bool = True) -> None:
        super().__init__()
        self._ensure_ascii = ensure_ascii

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),  # docstring: UTC 时间戳
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _LOG_RECORD_RESERVED or value is None:
                continue
            payload[key] = value  # docstring: 合并 extra 字段（丢弃 None）

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack_info"] = record.stack_info

        return json.dumps(payload, ensure_ascii=self._ensure_ascii, default=str)


def resolve_log_level(level: Union[int, str, None]) -> int:
    """Accept `logging` ints or names like "debug"; unknown names fall back to INFO."""
    if level is None:
        return DEFAULT_LOG_LEVEL
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else DEFAULT_LOG_LEVEL


def configure_logging(
    *,
    logger_name: str = DEFAULT_LOGGER_NAME,
    level: Union[int, str, None] = DEFAULT_LOG_LEVEL,
    ensure_ascii: bool = True,
) -> logging.Logger:
    """
    [职责] 配置项目 base logger（挂载一次 JSON handler）。
    [边界] 不触碰 root logger；重复调用只更新级别。
    [上游关系] app 工厂 / CLI 入口 / get_logger 调用。
    [下游关系] 所有 hybrid_search.* logger 继承该 handler。
    """
    resolved = resolve_log_level(level)
    logger = logging.getLogger(logger_name)
    logger.setLevel(resolved)

    handler = next((h for h in logger.handlers if getattr(h, "name", "") == _HANDLER_NAME), None)
    if handler is None:
        handler = logging.StreamHandler()
        handler.name = _HANDLER_NAME  # docstring: 标记 handler，避免重复挂载
        handler.setFormatter(StructuredLogFormatter(ensure_ascii=ensure_ascii))
        logger.addHandler(handler)
    handler.setLevel(resolved)

    logger.propagate = False  # docstring: 避免重复向 root 传播
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    [职责] 获取挂载在 hybrid_search 根下的 logger。
    [边界] 首次调用时才配置 base logger；已配置则不覆盖级别。
    [上游关系] 各模块在模块级调用。
    [下游关系] 输出 JSON 结构化日志。
    """
    base = logging.getLogger(DEFAULT_LOGGER_NAME)
    if not any(getattr(h, "name", "") == _HANDLER_NAME for h in base.handlers):
        configure_logging()
    full_name = name or DEFAULT_LOGGER_NAME
    if name and not name.startswith(DEFAULT_LOGGER_NAME):
        full_name = f"{DEFAULT_LOGGER_NAME}.{name}"
    return logging.getLogger(full_name)


def build_log_fields(
    *,
    context: Optional[Any] = None,
    extra: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    [职责] 合成结构化日志字段：context 中的 trace 字段 + 显式 extra。
    [边界] 不生成缺失 trace_id；None 值丢弃。
    [上游关系] log_event 调用。
    [下游关系] logger.extra。
    """
    fields: Dict[str, Any] = {}
    if context is not None:
        for key in TRACE_FIELD_KEYS:
            value = context.get(key) if isinstance(context, Mapping) else getattr(context, key, None)
            if value is not None and str(value):
                fields[key] = str(value)
    if extra:
        fields.update({k: v for k, v in extra.items() if v is not None})
    return fields


def log_event(
    logger: logging.Logger,
    level: int,
    message: str,
    *,
    context: Optional[Any] = None,
    fields: Optional[Mapping[str, Any]] = None,
    exc_info: Optional[Any] = None,
) -> None:
    """Structured log entry point used at pipeline milestones."""
    logger.log(level, message, extra=build_log_fields(context=context, extra=fields), exc_info=exc_info)


def truncate_text(text: Optional[str], *, max_len: int = DEFAULT_MAX_TEXT_LEN) -> Optional[str]:
    if text is None:
        return None
    s = str(text)
    if len(s) <= max_len:
        return s
    return f"{s[:max_len]}...(truncated)"


def hash_text(text: Optional[str]) -> Optional[str]:
    """sha256 digest so queries can be correlated without logging them verbatim."""
    if text is None:
        return None
    s = str(text)
    if not s:
        return ""
    return hashlib.sha256(s.encode("utf-8")).hexdigest()
