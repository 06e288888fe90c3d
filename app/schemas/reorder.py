# app/schemas/reorder.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field

from app.models.enums import AlertStatus
from app.schemas.batch import PageMeta, _Base


# ---------- settings ----------


class ReorderSettingIn(_Base):
    warehouse_id: Optional[int] = None
    reorder_level: Optional[int] = Field(default=None, ge=0)
    reorder_quantity: Optional[int] = Field(default=None, ge=0)
    safety_stock: Optional[int] = Field(default=None, ge=0)
    lead_time_days: Optional[int] = Field(default=None, ge=0)
    preferred_vendor_id: Optional[int] = None
    auto_reorder: Optional[bool] = None
    is_active: Optional[bool] = None


class ReorderSettingBulkRow(ReorderSettingIn):
    item_id: int = Field(..., gt=0)


class ReorderSettingBulkIn(_Base):
    settings: List[ReorderSettingBulkRow] = Field(..., min_length=1)


class ReorderSettingOut(_Base):
    id: int
    item_id: int
    warehouse_id: Optional[int] = None
    reorder_level: int
    reorder_quantity: int
    safety_stock: int
    lead_time_days: int
    preferred_vendor_id: Optional[int] = None
    auto_reorder: bool
    is_active: bool
    updated_at: datetime


# ---------- evaluation / forecast ----------


class PolicyOut(_Base):
    reorder_level: int
    reorder_quantity: int
    safety_stock: int
    lead_time_days: int
    preferred_vendor_id: Optional[int] = None
    auto_reorder: bool
    source: str


class EvaluationOut(_Base):
    item_id: int
    warehouse_id: Optional[int] = None
    on_hand: int
    committed: int
    incoming: int
    current_stock: int
    avg_daily_demand: float
    below_reorder: bool
    coverage_days: float
    suggested_qty: int
    estimated_cost: Decimal
    policy: PolicyOut


class HistoricalPointOut(_Base):
    period_start: date
    quantity: int


class ForecastPointOut(_Base):
    period_start: date
    forecast_qty: float
    confidence: float


class ForecastOut(_Base):
    item_id: int
    warehouse_id: Optional[int] = None
    method: str
    period_days: int
    window_size: int
    historical_points: List[HistoricalPointOut]
    forecast_points: List[ForecastPointOut]


# ---------- alerts ----------


class ReorderAlertOut(_Base):
    id: int
    item_id: int
    warehouse_id: Optional[int] = None
    status: AlertStatus
    suggested_qty: int
    current_stock: int
    reorder_level: int
    purchase_order_id: Optional[int] = None
    created_at: datetime
    notified_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class ReorderAlertListOut(_Base):
    data: List[ReorderAlertOut]
    meta: PageMeta


class PurchaseOrderOutcomeOut(_Base):
    alert_id: int
    status: str
    purchase_order_id: Optional[int] = None
    error: Optional[str] = None


class BulkPurchaseOrderIn(_Base):
    alert_ids: List[int] = Field(..., min_length=1)


class BulkPurchaseOrderOut(_Base):
    results: List[PurchaseOrderOutcomeOut]


# ---------- sweep ----------


class SweepIn(_Base):
    as_of: Optional[date] = None
    auto_order: bool = True


class SweepOut(_Base):
    targets: int
    evaluated: int
    below_reorder: int
    alerts_created: int
    purchase_orders_created: int
    purchasing_failures: int
    skipped: int
    cancelled: bool
    aborted: bool
    duration_seconds: float
