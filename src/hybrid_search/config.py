# src/hybrid_search/config.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

from hybrid_search.backend.pipelines.search.types import SearchField, StatusFilterPolicy
from hybrid_search.backend.utils import constants as C


def _find_repo_root(start: Path) -> Path:
    """
    Best-effort repository root discovery.
    - Prefer the closest ancestor containing `pyproject.toml`.
    - Fallback to the start directory if not found.
    """
    cur = start.resolve()
    for _ in range(20):
        if (cur / "pyproject.toml").exists():
            return cur
        if cur.parent == cur:
            break
        cur = cur.parent
    return start.resolve()


PACKAGE_ROOT = Path(__file__).resolve().parent
REPO_ROOT = _find_repo_root(PACKAGE_ROOT)

# Load .env early; explicit environment variables still win.
load_dotenv(str(REPO_ROOT / ".env"), override=False)

LOCAL_ROOT = REPO_ROOT / ".local"


class Settings(BaseSettings):
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    HYBRID_SEARCH_DATABASE_URL: str = f"sqlite+aiosqlite:///{LOCAL_ROOT / 'hybrid_search.db'}"

    # product corpus (ingested_records)
    EMBEDDING_SERVICE_URL: str = "http://localhost:8001"
    EMBEDDING_DIMENSIONS: int = 384
    EMBEDDING_TIMEOUT_S: float = C.DEFAULT_EMBEDDING_TIMEOUT_S

    # legal corpus (legal_documents)
    LEGAL_EMBEDDING_SERVICE_URL: str = "http://localhost:8002"
    LEGAL_EMBEDDING_DIMENSIONS: int = 768
    LEGAL_EMBEDDING_TIMEOUT_S: float = C.DEFAULT_EMBEDDING_TIMEOUT_S

    SEARCH_DEFAULT_TOP_K: int = C.DEFAULT_TOP_K
    SEARCH_MAX_TOP_K: int = C.MAX_TOP_K
    SEARCH_DEFAULT_FIELD: str = C.DEFAULT_SEARCH_FIELD
    SEARCH_SIMILARITY_THRESHOLD: float = C.DEFAULT_SIMILARITY_THRESHOLD
    SEARCH_RRF_K: int = C.DEFAULT_RRF_K
    SEARCH_CANDIDATE_MULTIPLIER: int = C.DEFAULT_CANDIDATE_MULTIPLIER
    SEARCH_MIN_CANDIDATES: int = C.DEFAULT_MIN_CANDIDATES
    SEARCH_REQUEST_TIMEOUT_S: float = C.DEFAULT_REQUEST_TIMEOUT_S
    SEARCH_STATUS_FILTER_POLICY: str = StatusFilterPolicy.EQUALITY_FALLBACK.value

    # startup self-check: embed("test") and compare dimensions
    VERIFY_EMBEDDING_DIMENSIONS: bool = True

    model_config = SettingsConfigDict(
        env_file=str(REPO_ROOT / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()


@dataclass(frozen=True)
class EmbeddingConfig:
    """Connection parameters of one corpus's embedding service."""

    base_url: str
    dimensions: int
    timeout_s: float = C.DEFAULT_EMBEDDING_TIMEOUT_S


@dataclass(frozen=True)
class SearchConfig:
    """
    [职责] 检索编排的只读配置值对象（默认值/上限/RRF 常数/超时/过滤策略）。
    [边界] 进程启动时构造一次并注入 orchestrator；之后不可变。
    [上游关系] from_settings 由 services 层在启动时调用；测试可直接构造。
    [下游关系] SearchOrchestrator 读取全部字段。
    """

    default_top_k: int = C.DEFAULT_TOP_K
    max_top_k: int = C.MAX_TOP_K
    default_search_field: SearchField = SearchField.CONTENT
    similarity_threshold: float = C.DEFAULT_SIMILARITY_THRESHOLD
    rrf_k: int = C.DEFAULT_RRF_K
    candidate_multiplier: int = C.DEFAULT_CANDIDATE_MULTIPLIER
    min_candidates: int = C.DEFAULT_MIN_CANDIDATES
    request_timeout_s: Optional[float] = C.DEFAULT_REQUEST_TIMEOUT_S
    status_filter_policy: StatusFilterPolicy = StatusFilterPolicy.EQUALITY_FALLBACK

    def __post_init__(self) -> None:
        if self.max_top_k < 1:
            raise ValueError("max_top_k must be >= 1")
        if not 1 <= self.default_top_k <= self.max_top_k:
            raise ValueError("default_top_k must be within [1, max_top_k]")
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ValueError("similarity_threshold must be within [0, 1]")
        if self.rrf_k < 1:
            raise ValueError("rrf_k must be >= 1")
        if self.candidate_multiplier < 1 or self.min_candidates < 1:
            raise ValueError("candidate_multiplier and min_candidates must be >= 1")

    def candidate_limit(self, top_k: int) -> int:
        """Per-leg candidate count for hybrid fusion."""
        return max(int(top_k) * self.candidate_multiplier, self.min_candidates)

    @classmethod
    def from_settings(cls, s: Settings) -> "SearchConfig":
        timeout = float(s.SEARCH_REQUEST_TIMEOUT_S)
        return cls(
            default_top_k=int(s.SEARCH_DEFAULT_TOP_K),
            max_top_k=int(s.SEARCH_MAX_TOP_K),
            default_search_field=SearchField.parse(s.SEARCH_DEFAULT_FIELD),
            similarity_threshold=float(s.SEARCH_SIMILARITY_THRESHOLD),
            rrf_k=int(s.SEARCH_RRF_K),
            candidate_multiplier=int(s.SEARCH_CANDIDATE_MULTIPLIER),
            min_candidates=int(s.SEARCH_MIN_CANDIDATES),
            request_timeout_s=timeout if timeout > 0 else None,  # docstring: <=0 关闭端到端超时
            status_filter_policy=StatusFilterPolicy(str(s.SEARCH_STATUS_FILTER_POLICY).strip().lower()),
        )


def product_embedding_config(s: Settings) -> EmbeddingConfig:
    return EmbeddingConfig(
        base_url=s.EMBEDDING_SERVICE_URL,
        dimensions=int(s.EMBEDDING_DIMENSIONS),
        timeout_s=float(s.EMBEDDING_TIMEOUT_S),
    )


def legal_embedding_config(s: Settings) -> EmbeddingConfig:
    return EmbeddingConfig(
        base_url=s.LEGAL_EMBEDDING_SERVICE_URL,
        dimensions=int(s.LEGAL_EMBEDDING_DIMENSIONS),
        timeout_s=float(s.LEGAL_EMBEDDING_TIMEOUT_S),
    )
