# app/core/scheduler.py
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.core.config import AppSettings, get_settings
from app.db.session import async_session_maker
from app.jobs.batch_expiry import run_once as run_expiry_once
from app.jobs.reorder_sweep import run_once as run_sweep_once

log = logging.getLogger("replenish.scheduler")

_scheduler: AsyncIOScheduler | None = None
_stop: asyncio.Event | None = None


async def _job_reorder_sweep() -> None:
    await run_sweep_once(async_session_maker, cancel_event=_stop)


async def _job_reconcile_expiry() -> None:
    await run_expiry_once(async_session_maker)


def init_scheduler(settings: Optional[AppSettings] = None) -> AsyncIOScheduler | None:
    """
    Interval reorder sweep + daily expiry reconcile, both in-process.
    max_instances=1 / coalesce keep a slow sweep from overlapping itself;
    other processes are kept honest by the alert / batch guards in the DB.
    """
    global _scheduler, _stop
    s = settings or get_settings()
    if not s.ENABLE_REORDER_SCHEDULER:
        return None
    if _scheduler is not None:
        return _scheduler

    _stop = asyncio.Event()
    _scheduler = AsyncIOScheduler(timezone=s.SCHEDULER_TIMEZONE)
    _scheduler.add_job(
        _job_reorder_sweep,
        "interval",
        seconds=s.REORDER_SWEEP_INTERVAL_SECONDS,
        id="reorder_sweep",
        max_instances=1,
        coalesce=True,
    )
    _scheduler.add_job(
        _job_reconcile_expiry,
        "cron",
        hour=s.EXPIRY_RECONCILE_HOUR,
        minute=5,
        id="batch_expiry_reconcile",
        max_instances=1,
        coalesce=True,
    )
    _scheduler.start()
    log.info(
        "scheduler started: sweep every %ss, expiry reconcile daily at %02d:05 %s",
        s.REORDER_SWEEP_INTERVAL_SECONDS, s.EXPIRY_RECONCILE_HOUR, s.SCHEDULER_TIMEZONE,
    )
    return _scheduler


def shutdown_scheduler() -> None:
    """Stop scheduling; a sweep in flight ends after its current item."""
    global _scheduler, _stop
    if _stop is not None:
        _stop.set()
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        log.info("scheduler stopped")
    _scheduler = None
    _stop = None
