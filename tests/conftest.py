# tests/conftest.py
from __future__ import annotations

import os
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

# in-process scheduler stays off under test
os.environ.setdefault("ENABLE_REORDER_SCHEDULER", "false")

from app.api.deps import get_purchasing, get_session  # noqa: E402
from app.db.base import Base, init_models  # noqa: E402
from app.db.session import create_engine_for  # noqa: E402
from app.main import app  # noqa: E402

from tests.helpers.fakes import FakePurchasing  # noqa: E402


# =========================================
# One SQLite file per test (NullPool, no cross-loop sharing)
# =========================================
@pytest_asyncio.fixture(scope="function")
async def async_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    init_models()
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'replenish.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture(scope="function")
def async_session_maker(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def session(async_session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Standard session: commit what is left on success, roll back on error."""
    async with async_session_maker() as sess:
        try:
            yield sess
            if sess.in_transaction():
                await sess.commit()
        except Exception:
            if sess.in_transaction():
                await sess.rollback()
            raise


@pytest.fixture
def fake_purchasing() -> FakePurchasing:
    return FakePurchasing()


# =========================================
# HTTP client against the ASGI app (lifespan not started)
# =========================================
@pytest_asyncio.fixture
async def client(async_session_maker, fake_purchasing) -> AsyncGenerator[httpx.AsyncClient, None]:
    async def _get_session() -> AsyncGenerator[AsyncSession, None]:
        async with async_session_maker() as s:
            yield s

    app.dependency_overrides[get_session] = _get_session
    app.dependency_overrides[get_purchasing] = lambda: fake_purchasing
    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            yield c
    finally:
        app.dependency_overrides.clear()
