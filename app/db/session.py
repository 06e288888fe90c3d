# app/db/session.py
# Async engine / session factory + FastAPI dependency (get_session).
from __future__ import annotations

import logging
import re
from collections.abc import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import get_settings

log = logging.getLogger("replenish.db")


# ---- DSN normalisation: postgres -> psycopg3, sqlite -> aiosqlite ----
def normalize_async_dsn(url: str) -> str:
    url = (url or "").strip()
    if (url.startswith('"') and url.endswith('"')) or (url.startswith("'") and url.endswith("'")):
        url = url[1:-1].strip()
    if url.startswith("sqlite:///"):
        return "sqlite+aiosqlite://" + url[len("sqlite:///") - 1 :]
    if url.startswith("postgresql+asyncpg://") or url.startswith("postgres+asyncpg://"):
        return re.sub(r"^postgres(?:ql)?\+asyncpg://", "postgresql+psycopg://", url)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """
    pysqlite/aiosqlite manage BEGIN themselves, which breaks SAVEPOINT.
    Hand transaction control back to SQLAlchemy so begin_nested() works.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_engine_for(url: str, *, echo: bool = False, **kwargs) -> AsyncEngine:
    dsn = normalize_async_dsn(url)
    backend = make_url(dsn).get_backend_name()
    if backend.startswith("postgresql"):
        kwargs.setdefault("pool_pre_ping", True)
    engine = create_async_engine(dsn, echo=echo, **kwargs)
    if backend.startswith("sqlite"):
        enable_sqlite_savepoints(engine)
    return engine


_settings = get_settings()
ASYNC_URL = normalize_async_dsn(_settings.DATABASE_URL)
log.debug("Using DSN (async): %s", make_url(ASYNC_URL).render_as_string(hide_password=True))

async_engine: AsyncEngine = create_engine_for(ASYNC_URL, echo=_settings.SQL_ECHO)

AsyncSessionLocal: async_sessionmaker[AsyncSession] = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

async_session_maker = AsyncSessionLocal


# ---- FastAPI dependency ----
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


async def close_engines() -> None:
    await async_engine.dispose()
