# app/adapters/stock_ledger_reader.py
from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, time
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.ports import ConsumptionRecord, StockLedgerReader, StockPosition
from app.models.stock_ledger import StockLedger
from app.models.stock_level import StockLevel
from app.utils.time import UTC


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=UTC)


class SqlStockLedgerReader(StockLedgerReader):
    """
    Position from stock_levels, consumption from negative stock_ledger deltas.

    warehouse_id=None reads across all warehouses.
    """

    async def get_position(
        self,
        session: AsyncSession,
        *,
        item_id: int,
        warehouse_id: Optional[int],
    ) -> StockPosition:
        stmt = select(
            func.coalesce(func.sum(StockLevel.on_hand), 0),
            func.coalesce(func.sum(StockLevel.committed), 0),
            func.coalesce(func.sum(StockLevel.incoming), 0),
        ).where(StockLevel.item_id == int(item_id))
        if warehouse_id is not None:
            stmt = stmt.where(StockLevel.warehouse_id == int(warehouse_id))
        on_hand, committed, incoming = (await session.execute(stmt)).one()
        return StockPosition(on_hand=int(on_hand), committed=int(committed), incoming=int(incoming))

    async def get_consumption_history(
        self,
        session: AsyncSession,
        *,
        item_id: int,
        warehouse_id: Optional[int],
        from_date: date,
        to_date: date,
    ) -> List[ConsumptionRecord]:
        stmt = select(StockLedger.occurred_at, StockLedger.delta).where(
            StockLedger.item_id == int(item_id),
            StockLedger.delta < 0,
            StockLedger.occurred_at >= _day_start(from_date),
            StockLedger.occurred_at < _day_start(to_date),
        )
        if warehouse_id is not None:
            stmt = stmt.where(StockLedger.warehouse_id == int(warehouse_id))

        per_day: Dict[date, int] = defaultdict(int)
        for occurred_at, delta in (await session.execute(stmt)).all():
            per_day[occurred_at.date()] += -int(delta)

        return [ConsumptionRecord(date=d, quantity=q) for d, q in sorted(per_day.items())]
