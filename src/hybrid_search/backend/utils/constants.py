# src/hybrid_search/backend/utils/constants.py

"""
[职责] 集中定义检索默认值与协议字段名（timing/stage/filter/status），降低跨模块硬编码。
[边界] 不包含运行时可变配置；不读取环境变量。
[上游关系] config/services/pipelines/api 引用这些稳定字段与默认值。
[下游关系] HTTP 响应、结构化日志使用一致字段名。
"""

from __future__ import annotations


API_VERSION = "v1"  # docstring: HTTP API 版本标识
SERVICE_NAME = "hybrid_search"  # docstring: /info 与日志中的服务名
SERVICE_VERSION = "0.1.0"  # docstring: 服务版本（与 pyproject 保持一致）

TIMING_TOTAL_KEY = "total"  # docstring: timing_ms 总耗时 key
TIMING_TOTAL_MS_KEY = "total_ms"  # docstring: middleware 写入的请求总耗时 key

STAGE_EMBED = "embed"  # docstring: embedding 阶段
STAGE_VECTOR = "vector"  # docstring: 向量召回阶段
STAGE_KEYWORD = "keyword"  # docstring: 关键词召回阶段
STAGE_FUSION = "fusion"  # docstring: RRF 融合阶段

DEFAULT_TOP_K = 10  # docstring: 默认返回条数
MAX_TOP_K = 100  # docstring: top_k 上限（超出静默截断）
DEFAULT_SEARCH_FIELD = "content"  # docstring: 默认向量字段
DEFAULT_SIMILARITY_THRESHOLD = 0.0  # docstring: 默认相似度下限
DEFAULT_RRF_K = 60  # docstring: RRF 阻尼常数
DEFAULT_CANDIDATE_MULTIPLIER = 3  # docstring: hybrid 候选放大倍数
DEFAULT_MIN_CANDIDATES = 20  # docstring: hybrid 每路最少候选数
DEFAULT_REQUEST_TIMEOUT_S = 10.0  # docstring: 单请求端到端超时
DEFAULT_EMBEDDING_TIMEOUT_S = 5.0  # docstring: embedding HTTP 超时

EXCLUDE_OVERRULED = "exclude_overruled"  # docstring: status 排除过滤器的取值
OVERRULED_STATUS = "overruled"  # docstring: 被排除的 status 值
ACTIVE_STATUS = "active"  # docstring: product 语料可检索状态

SNIPPET_MAX_CHARS = 300  # docstring: legal content 展示片段长度
DIMENSION_PROBE_TEXT = "test"  # docstring: 启动自检探针文本
