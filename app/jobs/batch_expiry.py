# app/jobs/batch_expiry.py
"""
Batch expiry reconcile job: ACTIVE -> EXPIRED for expiry_date <= as_of.

Usage:
    python -m app.jobs.batch_expiry [--as-of 2026-01-31]

Idempotent; safe to run more than once a day.
"""

from __future__ import annotations

import argparse
import asyncio
from datetime import date
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.core.config import get_settings
from app.core.logging import setup_logging
from app.db.session import create_engine_for
from app.services.batch_service import BatchService
from app.utils.time import utc_today


async def run_once(maker: async_sessionmaker[AsyncSession], *, as_of: Optional[date] = None) -> int:
    as_of = as_of or utc_today()
    async with maker() as session:
        n = await BatchService().reconcile_expiry(session, as_of=as_of)
        await session.commit()
    return n


async def main(argv: Optional[list[str]] = None) -> None:
    ap = argparse.ArgumentParser(description="Flip expired batches")
    ap.add_argument("--as-of", type=date.fromisoformat, default=None)
    args = ap.parse_args(argv)

    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, json=settings.JSON_LOG)

    engine = create_engine_for(settings.DATABASE_URL, poolclass=NullPool)
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        n = await run_once(maker, as_of=args.as_of)
    finally:
        await engine.dispose()
    print(f"[BatchExpiry] expired {n} batches as of {args.as_of or utc_today()}")


if __name__ == "__main__":
    asyncio.run(main())
