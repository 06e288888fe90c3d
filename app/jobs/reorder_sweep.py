# app/jobs/reorder_sweep.py
"""
Reorder sweep job (one pass).

Usage:
    python -m app.jobs.reorder_sweep [--as-of 2026-01-31] [--no-auto-order]

The scheduler calls run_once() on an interval as well.
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
from app.services.reorder_factory import build_alert_service
from app.services.reorder_sweep import SweepReport, run_reorder_sweep


async def run_once(
    maker: async_sessionmaker[AsyncSession],
    *,
    as_of: Optional[date] = None,
    auto_order: bool = True,
    cancel_event: Optional[asyncio.Event] = None,
) -> SweepReport:
    service = build_alert_service(session_maker=maker)
    async with maker() as session:
        return await run_reorder_sweep(
            session,
            service,
            as_of=as_of,
            auto_order=auto_order,
            cancel_event=cancel_event,
        )


async def main(argv: Optional[list[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Run one reorder sweep")
    ap.add_argument("--as-of", type=date.fromisoformat, default=None, help="evaluation date (YYYY-MM-DD)")
    ap.add_argument("--no-auto-order", action="store_true", help="create alerts only, never purchase orders")
    args = ap.parse_args(argv)

    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, json=settings.JSON_LOG)

    engine = create_engine_for(settings.DATABASE_URL, poolclass=NullPool)
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        report = await run_once(maker, as_of=args.as_of, auto_order=not args.no_auto_order)
    finally:
        await engine.dispose()

    print(
        f"[ReorderSweep] evaluated={report.evaluated} below={report.below_reorder} "
        f"alerts={report.alerts_created} pos={report.purchase_orders_created} "
        f"po_failures={report.purchasing_failures} aborted={report.aborted}"
    )
    return 1 if report.aborted else 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
