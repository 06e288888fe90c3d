# app/services/reorder_sweep.py
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional, Tuple

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from app.obs.metrics import reorder_sweep_duration
from app.services.reorder_alert_service import PO_CREATED, PO_FAILED, ReorderAlertService
from app.services.replenishment_errors import ItemNotFound

log = logging.getLogger("replenish.sweep")


@dataclass
class SweepReport:
    targets: int = 0
    evaluated: int = 0
    below_reorder: int = 0
    alerts_created: int = 0
    purchase_orders_created: int = 0
    purchasing_failures: int = 0
    skipped: int = 0
    cancelled: bool = False
    aborted: bool = False
    duration_seconds: float = 0.0


async def run_reorder_sweep(
    session: AsyncSession,
    service: ReorderAlertService,
    *,
    as_of: Optional[date] = None,
    targets: Optional[Iterable[Tuple[int, Optional[int]]]] = None,
    cancel_event: Optional[asyncio.Event] = None,
    auto_order: bool = True,
) -> SweepReport:
    """
    One pass over every reorder target.

    - Items are independent: each one commits on its own, nothing is held
      across items.
    - cancel_event is checked between items; the current item always finishes.
    - A store error (DBAPIError) rolls back the item in flight and aborts the
      pass; already finished items stay committed, the next pass picks up.
    - Purchasing failures are counted, never fatal.

    Returns a SweepReport.
    """
    report = SweepReport()
    started = time.perf_counter()

    try:
        if targets is None:
            targets = await service.evaluator.settings_service.list_targets(session)
            await session.commit()
        targets = list(targets)
        report.targets = len(targets)
        log.info("reorder sweep start targets=%d as_of=%s", report.targets, as_of)

        for item_id, warehouse_id in targets:
            if cancel_event is not None and cancel_event.is_set():
                report.cancelled = True
                log.info("reorder sweep cancelled after %d items", report.evaluated)
                break
            try:
                outcome = await service.process_item(
                    session,
                    item_id=item_id,
                    warehouse_id=warehouse_id,
                    as_of=as_of,
                    auto_order=auto_order,
                )
            except ItemNotFound as e:
                await session.rollback()
                report.skipped += 1
                log.warning("reorder sweep skipped item=%s wh=%s: %s", item_id, warehouse_id, e)
                continue

            report.evaluated += 1
            if outcome.evaluation.below_reorder:
                report.below_reorder += 1
            if outcome.alert_created:
                report.alerts_created += 1
            if outcome.purchase_order is not None:
                if outcome.purchase_order.status == PO_CREATED:
                    report.purchase_orders_created += 1
                elif outcome.purchase_order.status == PO_FAILED:
                    report.purchasing_failures += 1
    except DBAPIError as e:
        await session.rollback()
        report.aborted = True
        log.warning("reorder sweep aborted after %d items: store error %s", report.evaluated, e)
    finally:
        report.duration_seconds = round(time.perf_counter() - started, 3)
        reorder_sweep_duration.observe(report.duration_seconds)

    log.info(
        "reorder sweep done evaluated=%d below=%d alerts=%d pos=%d po_failures=%d aborted=%s",
        report.evaluated, report.below_reorder, report.alerts_created,
        report.purchase_orders_created, report.purchasing_failures, report.aborted,
    )
    return report
