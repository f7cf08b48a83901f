# playground/conftest.py

"""
[职责] gate tests 公共 fixtures：临时 SQLite 引擎（含 FTS5 虚表与触发器）、会话工厂、造数与 fake embedding。
[边界] 每个测试函数独立数据库文件；不访问真实 embedding 服务。
[上游关系] pytest 自动加载。
[下游关系] playground/*_gate/test_*.py。
"""

from __future__ import annotations

import asyncio
import math
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from hybrid_search.backend.db.engine import create_engine, create_sessionmaker, init_db
from hybrid_search.backend.db.fts import ensure_sqlite_fts


PRODUCT_DIM = 384  # docstring: product 语料向量维度
LEGAL_DIM = 768  # docstring: legal 语料向量维度


def axis_vector(dim: int, weights: Mapping[int, float]) -> List[float]:
    """Sparse -> dense helper: {axis: weight} to a `dim`-length list."""
    out = [0.0] * int(dim)
    for axis, weight in weights.items():
        out[int(axis)] = float(weight)
    return out


def angled_vector(dim: int, similarity: float) -> List[float]:
    """Unit vector whose [0,1] similarity to axis 0 equals `similarity`."""
    theta = (1.0 - float(similarity)) * math.pi
    return axis_vector(dim, {0: math.cos(theta), 1: math.sin(theta)})


class FakeEmbedder:
    """
    [职责] 可编程 embedding stub：text -> 向量映射，可注入延迟/异常，并记录调用。
    [边界] 仅测试使用；verify_dimensions 与 HttpEmbeddingClient 语义一致。
    """

    def __init__(
        self,
        *,
        dim: int,
        mapping: Optional[Mapping[str, Sequence[float]]] = None,
        default: Optional[Sequence[float]] = None,
        delay_s: float = 0.0,
        error: Optional[BaseException] = None,
    ) -> None:
        self.dim = int(dim)
        self.mapping = dict(mapping or {})
        self.default = list(default) if default is not None else axis_vector(dim, {0: 1.0})
        self.delay_s = float(delay_s)
        self.error = error
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.error is not None:
            raise self.error
        return list(self.mapping.get(text, self.default))


@pytest_asyncio.fixture
async def engine(tmp_path: Any) -> AsyncIterator[AsyncEngine]:
    eng = create_engine(url=f"sqlite+aiosqlite:///{tmp_path / 'hybrid_search_test.db'}")
    await init_db(engine=eng)
    Session = create_sessionmaker(eng)
    async with Session() as s:
        await ensure_sqlite_fts(s)  # docstring: keyword 召回依赖 FTS 虚表
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_sessionmaker(engine)


@pytest_asyncio.fixture
async def session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_factory() as s:
        yield s


@pytest.fixture
def seed(session_factory: async_sessionmaker[AsyncSession]) -> Callable[..., Awaitable[None]]:
    """Insert ORM rows in one committed transaction (triggers keep FTS in sync)."""

    async def _seed(*rows: Any) -> None:
        async with session_factory() as s:
            s.add_all(list(rows))
            await s.commit()

    return _seed


@pytest.fixture
def make_embedder() -> Callable[..., FakeEmbedder]:
    return FakeEmbedder


@pytest.fixture
def vectors() -> Dict[str, Callable[..., List[float]]]:
    return {"axis": axis_vector, "angled": angled_vector}


@pytest_asyncio.fixture
async def product_dataset(seed: Callable[..., Awaitable[None]]) -> Dict[str, List[float]]:
    """
    [职责] 标准 product 语料：running shoes / boots / espresso + 非 active 与无向量记录。
    [边界] query "running shoes" 的向量为 axis 0；返回 query -> vector 映射供 FakeEmbedder 使用。
    """
    from hybrid_search.backend.db.models import ProductRecordModel

    await seed(
        ProductRecordModel(
            id=1,
            title="Trail running shoes",
            description="Lightweight running shoes for trail runners",
            category="footwear",
            tags=["trail", "running"],
            raw_data={"sku": "TR-1"},
            content_embedding=axis_vector(PRODUCT_DIM, {0: 1.0}),
            title_embedding=axis_vector(PRODUCT_DIM, {0: 1.0}),
        ),
        ProductRecordModel(
            id=2,
            title="Road running shoes",
            description="Cushioned shoes for road running",
            category="footwear",
            content_embedding=axis_vector(PRODUCT_DIM, {0: 0.8, 1: 0.6}),
            title_embedding=axis_vector(PRODUCT_DIM, {1: 1.0}),
        ),
        ProductRecordModel(
            id=3,
            title="Leather boots",
            description="Waterproof hiking boots",
            category="footwear",
            content_embedding=axis_vector(PRODUCT_DIM, {1: 1.0}),
        ),
        ProductRecordModel(
            id=4,
            title="Espresso machine",
            description="Coffee maker for home baristas",
            category="kitchen",
            content_embedding=axis_vector(PRODUCT_DIM, {2: 1.0}),
        ),
        ProductRecordModel(
            id=5,
            title="Discontinued running shoes",
            description="Old running shoes model",
            category="footwear",
            status="inactive",
            content_embedding=axis_vector(PRODUCT_DIM, {0: 1.0}),
        ),
        ProductRecordModel(
            id=6,
            title="Running socks",
            description="Breathable socks",
            category="apparel",
            content_embedding=None,
        ),
    )
    return {"running shoes": axis_vector(PRODUCT_DIM, {0: 1.0})}


@pytest_asyncio.fixture
async def legal_dataset(seed: Callable[..., Awaitable[None]]) -> Dict[str, List[float]]:
    """
    [职责] 标准 legal 语料：CA/NY 雇佣案例（含 overruled）、§ 1983 成文法与无向量评论。
    [边界] "wrongful termination" 向量为 axis 0；"42 U.S.C. § 1983" 向量为 axis 5（与所有文档正交）。
    """
    from hybrid_search.backend.db.models import LegalDocumentModel

    await seed(
        LegalDocumentModel(
            id=1,
            doc_id="case-1",
            doc_type="case",
            title="Smith v. Jones",
            citation="1 Cal. 100",
            jurisdiction="CA",
            court="Cal. Supreme Court",
            practice_area="employment",
            status="good_law",
            content="Wrongful termination claim under California law.",
            content_embedding=axis_vector(LEGAL_DIM, {0: 1.0}),
            headnote_embedding=axis_vector(LEGAL_DIM, {0: 1.0}),
        ),
        LegalDocumentModel(
            id=2,
            doc_id="case-2",
            doc_type="case",
            title="Doe v. Acme",
            citation="2 N.Y. 200",
            jurisdiction="NY",
            practice_area="employment",
            status="good_law",
            content="Wrongful termination and retaliation.",
            content_embedding=axis_vector(LEGAL_DIM, {0: 0.9, 1: math.sqrt(1 - 0.81)}),
        ),
        LegalDocumentModel(
            id=3,
            doc_id="case-3",
            doc_type="case",
            title="Roe v. Corp",
            citation="3 Cal. 300",
            jurisdiction="CA",
            practice_area="employment",
            status="overruled",
            content="Wrongful termination in California, later overruled.",
            content_embedding=axis_vector(LEGAL_DIM, {0: 1.0}),
        ),
        LegalDocumentModel(
            id=4,
            doc_id="statute-1983",
            doc_type="statute",
            title="Civil action for deprivation of rights",
            citation="42 U.S.C. § 1983",
            jurisdiction="US",
            practice_area="civil_rights",
            status="good_law",
            content="Actions under 42 U.S.C. § 1983 for deprivation of rights.",
            content_embedding=axis_vector(LEGAL_DIM, {3: 1.0}),
        ),
        LegalDocumentModel(
            id=5,
            doc_id="commentary-1983",
            doc_type="secondary",
            title="Section 1983 commentary",
            jurisdiction="US",
            practice_area="civil_rights",
            status=None,
            content="Commentary on 42 U.S.C. § 1983 claims.",
            content_embedding=None,
        ),
    )
    return {
        "wrongful termination": axis_vector(LEGAL_DIM, {0: 1.0}),
        "42 U.S.C. § 1983": axis_vector(LEGAL_DIM, {5: 1.0}),
    }
