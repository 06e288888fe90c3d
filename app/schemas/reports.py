# app/schemas/reports.py
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import List, Optional

from app.schemas.batch import _Base


class BelowReorderRow(_Base):
    item_id: int
    warehouse_id: Optional[int] = None
    sku: Optional[str] = None
    name: Optional[str] = None
    current_stock: int
    reorder_level: int
    reorder_quantity: int
    suggested_qty: int
    estimated_cost: Decimal
    preferred_vendor_id: Optional[int] = None
    auto_reorder: bool


class CoverageRow(_Base):
    item_id: int
    warehouse_id: Optional[int] = None
    sku: Optional[str] = None
    name: Optional[str] = None
    current_stock: int
    reorder_level: int
    avg_daily_demand: float
    coverage_days: float


class ReorderSummary(_Base):
    items_below_reorder: int
    pending_alerts: int
    acknowledged_alerts: int
    po_created_alerts: int
    auto_reorder_active: int


class ReorderReportOut(_Base):
    items_below_reorder: List[BelowReorderRow]
    stock_coverage: List[CoverageRow]
    summary: ReorderSummary


class ExpiringBatchRow(_Base):
    batch_id: int
    batch_number: str
    item_id: int
    sku: Optional[str] = None
    item_name: Optional[str] = None
    warehouse_id: int
    qty_remaining: int
    expiry_date: Optional[date] = None
    status: str
    days_until_expiry: Optional[int] = None


class ExpiredBatchRow(_Base):
    batch_id: int
    batch_number: str
    item_id: int
    sku: Optional[str] = None
    item_name: Optional[str] = None
    warehouse_id: int
    qty_remaining: int
    expiry_date: Optional[date] = None
    status: str
    days_expired: Optional[int] = None


class BatchExpiryReportOut(_Base):
    as_of: date
    within_days: int
    expiring: List[ExpiringBatchRow]
    expired: List[ExpiredBatchRow]
