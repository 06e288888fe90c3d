# app/services/reorder_factory.py
from __future__ import annotations

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.adapters.item_master import SqlItemMaster
from app.adapters.purchasing import SqlPurchasing
from app.adapters.stock_ledger_reader import SqlStockLedgerReader
from app.domain.ports import ItemMaster, Purchasing, StockLedgerReader
from app.services.demand_forecast_service import DemandForecaster
from app.services.reorder_alert_service import ReorderAlertService
from app.services.reorder_evaluator import ReorderEvaluator
from app.services.reorder_settings_service import ReorderSettingsService


def build_evaluator(
    *,
    ledger: Optional[StockLedgerReader] = None,
    items: Optional[ItemMaster] = None,
) -> ReorderEvaluator:
    ledger = ledger or SqlStockLedgerReader()
    return ReorderEvaluator(
        ledger=ledger,
        items=items or SqlItemMaster(),
        forecaster=DemandForecaster(ledger),
        settings_service=ReorderSettingsService(),
    )


def build_alert_service(
    *,
    ledger: Optional[StockLedgerReader] = None,
    items: Optional[ItemMaster] = None,
    purchasing: Optional[Purchasing] = None,
    session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
    purchasing_timeout: Optional[float] = None,
) -> ReorderAlertService:
    """Default wiring: SQL collaborators over the application database."""
    return ReorderAlertService(
        evaluator=build_evaluator(ledger=ledger, items=items),
        purchasing=purchasing or SqlPurchasing(session_maker),
        purchasing_timeout=purchasing_timeout,
    )
