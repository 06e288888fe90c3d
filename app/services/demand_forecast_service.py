# app/services/demand_forecast_service.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.domain.ports import ConsumptionRecord, StockLedgerReader
from app.utils.time import utc_today

log = logging.getLogger("replenish.forecast")

METHOD_MOVING_AVERAGE = "moving-average"
METHOD_INSUFFICIENT_DATA = "insufficient-data"
MIN_HISTORICAL_PERIODS = 2


@dataclass(frozen=True)
class HistoricalPoint:
    period_start: date
    quantity: int


@dataclass(frozen=True)
class ForecastPoint:
    period_start: date
    forecast_qty: float
    confidence: float


@dataclass(frozen=True)
class ForecastResult:
    item_id: int
    warehouse_id: Optional[int]
    method: str
    period_days: int
    window_size: int
    historical_points: List[HistoricalPoint] = field(default_factory=list)
    forecast_points: List[ForecastPoint] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return self.method == METHOD_INSUFFICIENT_DATA


def bucket_history(
    records: Iterable[ConsumptionRecord],
    *,
    window_start: date,
    as_of: date,
    period_days: int,
) -> List[HistoricalPoint]:
    """
    Sum consumption into fixed buckets of period_days starting at window_start.
    Leading empty buckets (before the first consumption) are dropped; empty
    buckets after it count as zero-demand periods.
    """
    if period_days <= 0:
        raise ValueError("period_days must be > 0")
    span = (as_of - window_start).days
    n_buckets = max(0, math.ceil(span / period_days))
    totals = [0] * n_buckets
    seen = [False] * n_buckets

    for rec in records:
        if rec.date < window_start or rec.date >= as_of:
            continue
        idx = (rec.date - window_start).days // period_days
        totals[idx] += int(rec.quantity)
        seen[idx] = True

    if not any(seen):
        return []
    first = seen.index(True)
    return [
        HistoricalPoint(
            period_start=window_start + timedelta(days=i * period_days),
            quantity=totals[i],
        )
        for i in range(first, n_buckets)
    ]


def moving_average_forecast(
    history: List[HistoricalPoint],
    *,
    as_of: date,
    period_days: int,
    ma_periods: int,
    horizon_periods: int,
) -> tuple[str, int, List[ForecastPoint]]:
    """
    Flat simple moving average over the last ma_periods buckets.
    Fewer than two buckets: zero forecasts tagged insufficient-data.
    Returns (method, window_size, points).
    """
    starts = [as_of + timedelta(days=i * period_days) for i in range(horizon_periods)]

    if len(history) < MIN_HISTORICAL_PERIODS:
        return (
            METHOD_INSUFFICIENT_DATA,
            0,
            [ForecastPoint(period_start=s, forecast_qty=0.0, confidence=0.0) for s in starts],
        )

    window = min(int(ma_periods), len(history))
    recent = history[-window:]
    avg = sum(p.quantity for p in recent) / window
    confidence = min(0.95, 0.5 + 0.05 * len(history))
    points = [
        ForecastPoint(period_start=s, forecast_qty=round(avg, 2), confidence=round(confidence, 2))
        for s in starts
    ]
    return METHOD_MOVING_AVERAGE, window, points


class DemandForecaster:
    """Aggregates ledger consumption into bucketed forecasts and average daily demand."""

    def __init__(
        self,
        ledger: StockLedgerReader,
        *,
        period_days: Optional[int] = None,
        moving_average_periods: Optional[int] = None,
    ) -> None:
        s = get_settings()
        self.ledger = ledger
        self.period_days = int(period_days or s.FORECAST_PERIOD_DAYS)
        self.moving_average_periods = int(moving_average_periods or s.FORECAST_MOVING_AVERAGE_PERIODS)

    async def compute_forecast(
        self,
        session: AsyncSession,
        *,
        item_id: int,
        warehouse_id: Optional[int] = None,
        history_window_days: Optional[int] = None,
        horizon_periods: Optional[int] = None,
        as_of: Optional[date] = None,
    ) -> ForecastResult:
        s = get_settings()
        history_window_days = int(history_window_days or s.FORECAST_HISTORY_WINDOW_DAYS)
        horizon_periods = int(horizon_periods or s.FORECAST_HORIZON_PERIODS)
        if history_window_days <= 0 or horizon_periods <= 0:
            raise ValueError("history_window_days and horizon_periods must be > 0")
        as_of = as_of or utc_today()
        window_start = as_of - timedelta(days=history_window_days)

        records = await self.ledger.get_consumption_history(
            session,
            item_id=item_id,
            warehouse_id=warehouse_id,
            from_date=window_start,
            to_date=as_of,
        )
        history = bucket_history(
            records, window_start=window_start, as_of=as_of, period_days=self.period_days
        )
        method, window, points = moving_average_forecast(
            history,
            as_of=as_of,
            period_days=self.period_days,
            ma_periods=self.moving_average_periods,
            horizon_periods=horizon_periods,
        )
        if method == METHOD_INSUFFICIENT_DATA:
            log.debug(
                "forecast item=%s wh=%s: %d historical periods, degraded",
                item_id, warehouse_id, len(history),
            )
        return ForecastResult(
            item_id=int(item_id),
            warehouse_id=warehouse_id,
            method=method,
            period_days=self.period_days,
            window_size=window,
            historical_points=history,
            forecast_points=points,
        )

    async def average_daily_demand(
        self,
        session: AsyncSession,
        *,
        item_id: int,
        warehouse_id: Optional[int] = None,
        window_days: Optional[int] = None,
        as_of: Optional[date] = None,
    ) -> float:
        """Total consumed over [as_of - window_days, as_of) divided by window_days."""
        window_days = int(window_days if window_days is not None else get_settings().DEMAND_WINDOW_DAYS)
        if window_days <= 0:
            raise ValueError("window_days must be > 0")
        as_of = as_of or utc_today()
        records = await self.ledger.get_consumption_history(
            session,
            item_id=item_id,
            warehouse_id=warehouse_id,
            from_date=as_of - timedelta(days=window_days),
            to_date=as_of,
        )
        total = sum(int(r.quantity) for r in records)
        return total / window_days
