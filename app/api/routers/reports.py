# app/api/routers/reports.py
from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_session
from app.core.config import get_settings
from app.schemas.reports import BatchExpiryReportOut
from app.services.batch_expiry_report import expired_batches, expiring_batches
from app.utils.time import utc_today

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/batch-expiry", response_model=BatchExpiryReportOut)
async def batch_expiry_report(
    within_days: Optional[int] = Query(None, ge=0, le=3650),
    as_of: Optional[date] = Query(None),
    item_id: Optional[int] = Query(None),
    warehouse_id: Optional[int] = Query(None),
    session: AsyncSession = Depends(get_session),
) -> BatchExpiryReportOut:
    """
    expiring: ACTIVE lots expiring within N days (days_until_expiry)
    expired : EXPIRED lots and not-yet-reconciled ACTIVE lots past expiry (days_expired)
    """
    as_of = as_of or utc_today()
    days = within_days if within_days is not None else get_settings().EXPIRING_WITHIN_DAYS

    soon = await expiring_batches(
        session, within_days=days, as_of=as_of, item_id=item_id, warehouse_id=warehouse_id
    )
    gone = await expired_batches(session, as_of=as_of, item_id=item_id, warehouse_id=warehouse_id)

    def _row(r, key: str) -> dict:
        d = asdict(r)
        d[key] = d.pop("days")
        return d

    return BatchExpiryReportOut(
        as_of=as_of,
        within_days=days,
        expiring=[_row(r, "days_until_expiry") for r in soon],
        expired=[_row(r, "days_expired") for r in gone],
    )
