# app/api/routers/reorder.py
from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    get_alert_service,
    get_evaluator,
    get_report_service,
    get_session,
    get_settings_service,
)
from app.api.problem import raise_404
from app.models.enums import AlertStatus
from app.schemas.reorder import (
    BulkPurchaseOrderIn,
    BulkPurchaseOrderOut,
    EvaluationOut,
    ForecastOut,
    PurchaseOrderOutcomeOut,
    ReorderAlertListOut,
    ReorderAlertOut,
    ReorderSettingBulkIn,
    ReorderSettingIn,
    ReorderSettingOut,
    SweepIn,
    SweepOut,
)
from app.schemas.reports import ReorderReportOut
from app.services.reorder_alert_service import ReorderAlertService
from app.services.reorder_evaluator import ReorderEvaluator
from app.services.reorder_report_service import ReorderReportService
from app.services.reorder_settings_service import ReorderSettingsService
from app.services.reorder_sweep import run_reorder_sweep

router = APIRouter(prefix="/reorder", tags=["reorder"])


# ---------------------------------------------------------
# Settings
# ---------------------------------------------------------


@router.get("/settings/{item_id}", response_model=ReorderSettingOut)
async def get_reorder_setting(
    item_id: int,
    warehouse_id: Optional[int] = Query(None),
    session: AsyncSession = Depends(get_session),
    svc: ReorderSettingsService = Depends(get_settings_service),
) -> ReorderSettingOut:
    row = await svc.get_setting(session, item_id=item_id, warehouse_id=warehouse_id)
    if row is None:
        raise_404("reorder_setting_not_found", f"no reorder setting for item {item_id} wh={warehouse_id}")
    return ReorderSettingOut.model_validate(row)


@router.put("/settings/{item_id}", response_model=ReorderSettingOut)
async def upsert_reorder_setting(
    item_id: int,
    body: ReorderSettingIn,
    session: AsyncSession = Depends(get_session),
    svc: ReorderSettingsService = Depends(get_settings_service),
) -> ReorderSettingOut:
    data = body.model_dump(exclude={"warehouse_id"}, exclude_unset=True)
    row = await svc.upsert(session, item_id=item_id, warehouse_id=body.warehouse_id, **data)
    await session.commit()
    return ReorderSettingOut.model_validate(row)


@router.put("/settings", response_model=List[ReorderSettingOut])
async def bulk_upsert_reorder_settings(
    body: ReorderSettingBulkIn,
    session: AsyncSession = Depends(get_session),
    svc: ReorderSettingsService = Depends(get_settings_service),
) -> List[ReorderSettingOut]:
    rows = await svc.bulk_upsert(session, [r.model_dump(exclude_unset=True) for r in body.settings])
    await session.commit()
    return [ReorderSettingOut.model_validate(r) for r in rows]


# ---------------------------------------------------------
# Evaluation / forecast
# ---------------------------------------------------------


@router.get("/evaluate/{item_id}", response_model=EvaluationOut)
async def evaluate_item(
    item_id: int,
    warehouse_id: Optional[int] = Query(None),
    window_days: Optional[int] = Query(None, gt=0),
    as_of: Optional[date] = Query(None),
    session: AsyncSession = Depends(get_session),
    evaluator: ReorderEvaluator = Depends(get_evaluator),
) -> EvaluationOut:
    ev = await evaluator.evaluate(
        session, item_id=item_id, warehouse_id=warehouse_id, window_days=window_days, as_of=as_of
    )
    return EvaluationOut.model_validate(asdict(ev))


@router.get("/forecast/{item_id}", response_model=ForecastOut)
async def forecast_item(
    item_id: int,
    warehouse_id: Optional[int] = Query(None),
    history_window_days: Optional[int] = Query(None, gt=0),
    horizon_periods: Optional[int] = Query(None, gt=0, le=52),
    as_of: Optional[date] = Query(None),
    session: AsyncSession = Depends(get_session),
    evaluator: ReorderEvaluator = Depends(get_evaluator),
) -> ForecastOut:
    await evaluator.items.get_item(session, item_id=item_id)
    result = await evaluator.forecaster.compute_forecast(
        session,
        item_id=item_id,
        warehouse_id=warehouse_id,
        history_window_days=history_window_days,
        horizon_periods=horizon_periods,
        as_of=as_of,
    )
    return ForecastOut.model_validate(asdict(result))


# ---------------------------------------------------------
# Alerts
# ---------------------------------------------------------


@router.get("/alerts", response_model=ReorderAlertListOut)
async def list_alerts(
    status: Optional[AlertStatus] = Query(None),
    item_id: Optional[int] = Query(None),
    warehouse_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(25, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
    svc: ReorderAlertService = Depends(get_alert_service),
) -> ReorderAlertListOut:
    rows, meta = await svc.list_alerts(
        session, status=status, item_id=item_id, warehouse_id=warehouse_id, page=page, limit=limit
    )
    return ReorderAlertListOut(data=[ReorderAlertOut.model_validate(r) for r in rows], meta=meta)


@router.post("/alerts/{alert_id}/acknowledge", response_model=ReorderAlertOut)
async def acknowledge_alert(
    alert_id: int,
    session: AsyncSession = Depends(get_session),
    svc: ReorderAlertService = Depends(get_alert_service),
) -> ReorderAlertOut:
    return ReorderAlertOut.model_validate(await svc.acknowledge(session, alert_id))


@router.post("/alerts/{alert_id}/dismiss", response_model=ReorderAlertOut)
async def dismiss_alert(
    alert_id: int,
    session: AsyncSession = Depends(get_session),
    svc: ReorderAlertService = Depends(get_alert_service),
) -> ReorderAlertOut:
    return ReorderAlertOut.model_validate(await svc.dismiss(session, alert_id))


@router.post("/alerts/purchase-orders", response_model=BulkPurchaseOrderOut)
async def bulk_create_purchase_orders(
    body: BulkPurchaseOrderIn,
    session: AsyncSession = Depends(get_session),
    svc: ReorderAlertService = Depends(get_alert_service),
) -> BulkPurchaseOrderOut:
    outcomes = await svc.bulk_raise_purchase_orders(session, body.alert_ids)
    return BulkPurchaseOrderOut(results=[PurchaseOrderOutcomeOut.model_validate(asdict(o)) for o in outcomes])


@router.post("/alerts/{alert_id}/purchase-order", response_model=PurchaseOrderOutcomeOut)
async def create_purchase_order(
    alert_id: int,
    session: AsyncSession = Depends(get_session),
    svc: ReorderAlertService = Depends(get_alert_service),
) -> PurchaseOrderOutcomeOut:
    """Exactly-once per alert; repeated calls return the existing order id."""
    outcome = await svc.raise_purchase_order(session, alert_id)
    return PurchaseOrderOutcomeOut.model_validate(asdict(outcome))


# ---------------------------------------------------------
# Sweep / report
# ---------------------------------------------------------


@router.post("/sweep", response_model=SweepOut)
async def run_sweep(
    body: SweepIn,
    session: AsyncSession = Depends(get_session),
    svc: ReorderAlertService = Depends(get_alert_service),
) -> SweepOut:
    report = await run_reorder_sweep(session, svc, as_of=body.as_of, auto_order=body.auto_order)
    return SweepOut.model_validate(asdict(report))


@router.get("/report", response_model=ReorderReportOut)
async def reorder_report(
    as_of: Optional[date] = Query(None),
    session: AsyncSession = Depends(get_session),
    svc: ReorderReportService = Depends(get_report_service),
) -> ReorderReportOut:
    report = await svc.build(session, as_of=as_of)
    return ReorderReportOut.model_validate(asdict(report))
