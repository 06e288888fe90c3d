# app/services/reorder_report_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import AlertStatus
from app.models.item import Item
from app.models.reorder_alert import ReorderAlert
from app.models.reorder_setting import ReorderSetting
from app.services.reorder_evaluator import EvaluationResult, ReorderEvaluator
from app.services.replenishment_errors import ItemNotFound

log = logging.getLogger("replenish.reports")


@dataclass
class ReorderReport:
    items_below_reorder: List[dict] = field(default_factory=list)
    stock_coverage: List[dict] = field(default_factory=list)
    summary: Dict[str, int] = field(default_factory=dict)


def _below_row(ev: EvaluationResult, item: Optional[tuple]) -> dict:
    return {
        "item_id": ev.item_id,
        "warehouse_id": ev.warehouse_id,
        "sku": item[0] if item else None,
        "name": item[1] if item else None,
        "current_stock": ev.current_stock,
        "reorder_level": ev.policy.reorder_level,
        "reorder_quantity": ev.policy.reorder_quantity,
        "suggested_qty": ev.suggested_qty,
        "estimated_cost": ev.estimated_cost,
        "preferred_vendor_id": ev.policy.preferred_vendor_id,
        "auto_reorder": ev.policy.auto_reorder,
    }


def _coverage_row(ev: EvaluationResult, item: Optional[tuple]) -> dict:
    return {
        "item_id": ev.item_id,
        "warehouse_id": ev.warehouse_id,
        "sku": item[0] if item else None,
        "name": item[1] if item else None,
        "current_stock": ev.current_stock,
        "reorder_level": ev.policy.reorder_level,
        "avg_daily_demand": round(ev.avg_daily_demand, 2),
        "coverage_days": ev.coverage_days,
    }


class ReorderReportService:
    """Read-only: counts and suggested quantities, nothing about leases or retries."""

    def __init__(self, evaluator: ReorderEvaluator) -> None:
        self.evaluator = evaluator

    async def build(self, session: AsyncSession, *, as_of: Optional[date] = None) -> ReorderReport:
        targets = await self.evaluator.settings_service.list_targets(session)

        below: List[EvaluationResult] = []
        for item_id, warehouse_id in targets:
            try:
                ev = await self.evaluator.evaluate(
                    session, item_id=item_id, warehouse_id=warehouse_id, as_of=as_of
                )
            except ItemNotFound:
                log.debug("report: item %s vanished, skipped", item_id)
                continue
            if ev.below_reorder:
                below.append(ev)

        ids = sorted({ev.item_id for ev in below})
        items: Dict[int, tuple] = {}
        if ids:
            rows = await session.execute(select(Item.id, Item.sku, Item.name).where(Item.id.in_(ids)))
            items = {int(r.id): (r.sku, r.name) for r in rows}

        counts = dict(
            (
                await session.execute(
                    select(ReorderAlert.status, func.count(ReorderAlert.id)).group_by(ReorderAlert.status)
                )
            ).all()
        )
        auto_active = int(
            (
                await session.execute(
                    select(func.count(ReorderSetting.id)).where(
                        ReorderSetting.auto_reorder.is_(True),
                        ReorderSetting.is_active.is_(True),
                    )
                )
            ).scalar()
            or 0
        )

        return ReorderReport(
            items_below_reorder=[_below_row(ev, items.get(ev.item_id)) for ev in below],
            stock_coverage=sorted(
                (_coverage_row(ev, items.get(ev.item_id)) for ev in below),
                key=lambda r: (r["coverage_days"], r["item_id"]),
            ),
            summary={
                "items_below_reorder": len(below),
                "pending_alerts": int(counts.get(AlertStatus.PENDING.value, 0)),
                "acknowledged_alerts": int(counts.get(AlertStatus.ACKNOWLEDGED.value, 0)),
                "po_created_alerts": int(counts.get(AlertStatus.PO_CREATED.value, 0)),
                "auto_reorder_active": auto_active,
            },
        )
