# app/services/reorder_evaluator.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.ports import ItemMaster, StockLedgerReader, StockPosition
from app.services.demand_forecast_service import DemandForecaster
from app.services.reorder_settings_service import ReorderPolicy, ReorderSettingsService

log = logging.getLogger("replenish.evaluator")

SENTINEL_NO_DEMAND = 999


@dataclass(frozen=True)
class EvaluationResult:
    item_id: int
    warehouse_id: Optional[int]
    on_hand: int
    committed: int
    incoming: int
    current_stock: int
    avg_daily_demand: float
    below_reorder: bool
    coverage_days: float
    suggested_qty: int
    estimated_cost: Decimal
    policy: ReorderPolicy


def coverage_days(current_stock: int, avg_daily_demand: float) -> float:
    if avg_daily_demand <= 0:
        return SENTINEL_NO_DEMAND
    return max(0.0, round(current_stock / avg_daily_demand, 2))


def suggested_quantity(
    *,
    current_stock: int,
    avg_daily_demand: float,
    reorder_quantity: int,
    safety_stock: int,
    lead_time_days: int,
) -> int:
    """
    max(reorder_quantity, safety_stock + ceil(avg * lead_time) - current_stock),
    never below reorder_quantity and never negative.
    """
    lead_demand = math.ceil(max(0.0, avg_daily_demand) * max(0, lead_time_days))
    gap = int(safety_stock) + lead_demand - int(current_stock)
    return max(int(reorder_quantity), gap, 0)


def evaluate_position(
    *,
    item_id: int,
    warehouse_id: Optional[int],
    position: StockPosition,
    policy: ReorderPolicy,
    avg_daily_demand: float,
    cost_price: Decimal,
) -> EvaluationResult:
    current = position.current_stock
    qty = suggested_quantity(
        current_stock=current,
        avg_daily_demand=avg_daily_demand,
        reorder_quantity=policy.reorder_quantity,
        safety_stock=policy.safety_stock,
        lead_time_days=policy.lead_time_days,
    )
    return EvaluationResult(
        item_id=int(item_id),
        warehouse_id=warehouse_id,
        on_hand=int(position.on_hand),
        committed=int(position.committed),
        incoming=int(position.incoming),
        current_stock=current,
        avg_daily_demand=float(avg_daily_demand),
        below_reorder=current <= policy.reorder_level,
        coverage_days=coverage_days(current, avg_daily_demand),
        suggested_qty=qty,
        estimated_cost=(Decimal(qty) * Decimal(cost_price)).quantize(Decimal("0.01")),
        policy=policy,
    )


class ReorderEvaluator:
    def __init__(
        self,
        *,
        ledger: StockLedgerReader,
        items: ItemMaster,
        forecaster: Optional[DemandForecaster] = None,
        settings_service: Optional[ReorderSettingsService] = None,
    ) -> None:
        self.ledger = ledger
        self.items = items
        self.forecaster = forecaster or DemandForecaster(ledger)
        self.settings_service = settings_service or ReorderSettingsService()

    async def evaluate(
        self,
        session: AsyncSession,
        *,
        item_id: int,
        warehouse_id: Optional[int] = None,
        window_days: Optional[int] = None,
        as_of: Optional[date] = None,
    ) -> EvaluationResult:
        policy = await self.settings_service.resolve_policy(
            session, item_id=item_id, warehouse_id=warehouse_id
        )
        info = await self.items.get_item(session, item_id=item_id)
        position = await self.ledger.get_position(session, item_id=item_id, warehouse_id=warehouse_id)
        avg = await self.forecaster.average_daily_demand(
            session,
            item_id=item_id,
            warehouse_id=warehouse_id,
            window_days=window_days,
            as_of=as_of,
        )
        result = evaluate_position(
            item_id=item_id,
            warehouse_id=warehouse_id,
            position=position,
            policy=policy,
            avg_daily_demand=avg,
            cost_price=info.cost_price,
        )
        log.debug(
            "evaluate item=%s wh=%s stock=%s level=%s avg=%.3f below=%s qty=%s src=%s",
            item_id, warehouse_id, result.current_stock, policy.reorder_level, avg,
            result.below_reorder, result.suggested_qty, policy.source,
        )
        return result
