# src/hybrid_search/backend/utils/errors.py

"""
[职责] 统一检索域错误合同（error_code/message/detail/cause）与 HTTP 映射提示（http_status/retryable）。
[边界] 不依赖 FastAPI；不做日志；仅提供错误壳、检索错误分类与 payload 转换。
[上游关系] embedding client / retrievers / orchestrator / services 抛出本模块错误。
[下游关系] api/errors.py 将错误映射为 ErrorResponse 与 HTTP status。
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional, Tuple


ErrorDetail = Dict[str, Any]  # docstring: 错误细节类型（必须 JSON-safe）

ERROR_CODE_PATTERN_DOT = re.compile(r"^[a-z][a-z0-9]*(?:\.[a-z0-9_]+)+$")  # docstring: area.reason 规范

INVALID_QUERY_CODE = "search.invalid_query"  # docstring: 客户端查询非法
EMBEDDING_UNAVAILABLE_CODE = "search.embedding_unavailable"  # docstring: embedding 服务不可用
RETRIEVER_UNAVAILABLE_CODE = "search.retriever_unavailable"  # docstring: 向量/关键词后端不可用
DIMENSION_MISMATCH_CODE = "search.dimension_mismatch"  # docstring: 向量维度配置错误

ERROR_HTTP_STATUS_BY_CODE = {  # docstring: 错误码 -> HTTP status
    "bad_request": 400,
    "internal_error": 500,
    INVALID_QUERY_CODE: 400,
    EMBEDDING_UNAVAILABLE_CODE: 503,
    RETRIEVER_UNAVAILABLE_CODE: 503,
    DIMENSION_MISMATCH_CODE: 500,
}

ERROR_RETRYABLE_BY_CODE = {  # docstring: 错误码 -> retryable 默认值
    EMBEDDING_UNAVAILABLE_CODE: True,
    RETRIEVER_UNAVAILABLE_CODE: True,
}

STANDARD_ERROR_CODES = frozenset(ERROR_HTTP_STATUS_BY_CODE)  # docstring: 已登记错误码集合

INTERNAL_ERROR_CODE = "internal_error"  # docstring: 未知异常统一错误码
INTERNAL_ERROR_MESSAGE = "internal error"  # docstring: 未知异常统一消息


def is_valid_error_code(error_code: str) -> bool:
    """Registered codes or `area.reason` style codes are valid."""
    if not error_code:
        return False
    if error_code in STANDARD_ERROR_CODES:
        return True
    return bool(ERROR_CODE_PATTERN_DOT.match(error_code))


def ensure_json_safe_detail(detail: ErrorDetail) -> ErrorDetail:
    """
    [职责] 校验 detail 是否可 JSON 序列化。
    [边界] detail 必须是 dict；不做裁剪；失败直接抛 ValueError。
    [上游关系] DomainError 初始化时调用。
    [下游关系] api/errors.py 直接写入 ErrorResponse.detail。
    """
    if not isinstance(detail, dict):
        raise ValueError("detail must be a dict")
    try:
        json.dumps(detail)  # docstring: JSON 序列化校验
    except TypeError as exc:
        raise ValueError("detail must be JSON-serializable") from exc
    return detail


class DomainError(Exception):
    """
    [职责] 领域错误最小合同：error_code/message/detail/cause + http_status/retryable 提示。
    [边界] 仅表达语义；不承担日志与 HTTP 输出。
    [上游关系] services/pipelines 抛出本错误或其子类。
    [下游关系] api/errors.py 读取字段完成映射。
    """

    def __init__(
        self,
        *,
        error_code: str,
        message: str,
        detail: Optional[ErrorDetail] = None,
        cause: Optional[BaseException] = None,
        http_status: Optional[int] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        if not is_valid_error_code(error_code):
            raise ValueError(f"invalid error_code: {error_code}")  # docstring: 防止不规范错误码泄露
        normalized_detail = detail or {}
        ensure_json_safe_detail(normalized_detail)

        super().__init__(message)
        self.error_code = error_code  # docstring: 稳定错误码（即错误 kind）
        self.message = message
        self.detail = normalized_detail
        self.cause = cause
        self.http_status = (
            http_status if http_status is not None else ERROR_HTTP_STATUS_BY_CODE.get(error_code, 500)
        )  # docstring: 显式值优先
        self.retryable = (
            retryable if retryable is not None else ERROR_RETRYABLE_BY_CODE.get(error_code, False)
        )  # docstring: 显式值优先

        if cause is not None:
            self.__cause__ = cause  # docstring: 保留异常链路

    def to_dict(self) -> Dict[str, Any]:
        """Render the ErrorResponse.error body (without trace ids)."""
        return {
            "code": self.error_code,
            "message": self.message,
            "detail": self.detail,
        }


class BadRequestError(DomainError):
    """400：通用入参错误（非查询文本问题，例如未知统计维度）。"""

    def __init__(
        self,
        *,
        message: str = "bad request",
        detail: Optional[ErrorDetail] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(error_code="bad_request", message=message, detail=detail, cause=cause)


class InvalidQueryError(DomainError):
    """
    [职责] 查询请求非法（空查询、非法 top_k、未知字段/过滤器）。
    [边界] 在任何 I/O 之前抛出；调用方不应重试。
    [上游关系] orchestrator 校验与 filters 编译阶段抛出。
    [下游关系] api/errors.py 映射为 400。
    """

    def __init__(
        self,
        *,
        message: str = "invalid query",
        detail: Optional[ErrorDetail] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(error_code=INVALID_QUERY_CODE, message=message, detail=detail, cause=cause)


class EmbeddingUnavailableError(DomainError):
    """
    [职责] embedding 服务失败（超时/非 2xx/响应畸形）。
    [边界] core 内部不重试；retryable 仅提示调用方可整体重试。
    [上游关系] embedding/client.py 与 orchestrator 超时分支抛出。
    [下游关系] api/errors.py 映射为 503。
    """

    def __init__(
        self,
        *,
        message: str = "embedding service unavailable",
        detail: Optional[ErrorDetail] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(error_code=EMBEDDING_UNAVAILABLE_CODE, message=message, detail=detail, cause=cause)


class RetrieverUnavailableError(DomainError):
    """
    [职责] 向量或关键词检索后端失败/超时。
    [边界] 不做部分结果降级；请求整体失败。
    [上游关系] vector.py / keyword.py / orchestrator 超时分支抛出。
    [下游关系] api/errors.py 映射为 503。
    """

    def __init__(
        self,
        *,
        message: str = "retriever unavailable",
        detail: Optional[ErrorDetail] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(error_code=RETRIEVER_UNAVAILABLE_CODE, message=message, detail=detail, cause=cause)


class DimensionMismatchError(DomainError):
    """
    [职责] 向量长度与语料配置维度不一致（致命配置错误）。
    [边界] 启动自检阶段抛出并中止启动；运行期出现同样视为配置错误。
    [上游关系] embedding/client.verify_dimensions 与 orchestrator 抛出。
    [下游关系] app lifespan 中止；api/errors.py 映射为 500。
    """

    def __init__(self, *, expected: int, actual: int, corpus: str = "") -> None:
        super().__init__(
            error_code=DIMENSION_MISMATCH_CODE,
            message=f"embedding dimension mismatch: expected {int(expected)}, got {int(actual)}",
            detail={"expected": int(expected), "actual": int(actual), "corpus": str(corpus or "")},
        )
        self.expected = int(expected)
        self.actual = int(actual)


def to_http_error(
    error: BaseException,
    *,
    trace_id: Optional[str] = None,
) -> Tuple[int, Dict[str, Any]]:
    """
    [职责] 将异常转换为 HTTP status + ErrorResponse payload（不耦合 FastAPI）。
    [边界] 未知异常统一降级为 internal_error，不暴露原始异常信息。
    [上游关系] api/errors.py 调用。
    [下游关系] routers 返回统一 ErrorResponse。
    """
    if isinstance(error, DomainError):
        status_code = error.http_status
        payload = {"error": error.to_dict()}
    else:
        status_code = ERROR_HTTP_STATUS_BY_CODE[INTERNAL_ERROR_CODE]
        payload = {
            "error": {
                "code": INTERNAL_ERROR_CODE,
                "message": INTERNAL_ERROR_MESSAGE,
                "detail": {},
            }
        }  # docstring: 未知异常降级为 internal_error

    if trace_id:
        payload["error"]["trace_id"] = trace_id
    return status_code, payload
