# app/api/routers/batches.py
from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_batch_service, get_session
from app.models.enums import BatchStatus
from app.schemas.batch import (
    BatchAdjustIn,
    BatchCreate,
    BatchListOut,
    BatchOut,
    BatchRecallIn,
    BatchTransactionOut,
    BatchUpdate,
    ReconcileExpiryIn,
    ReconcileExpiryOut,
)
from app.services.batch_service import BatchService
from app.utils.time import utc_today

router = APIRouter(prefix="/batches", tags=["batches"])


@router.post("", response_model=BatchOut, status_code=201)
async def register_batch(
    body: BatchCreate,
    session: AsyncSession = Depends(get_session),
    svc: BatchService = Depends(get_batch_service),
) -> BatchOut:
    """Goods receipt of a new lot."""
    b = await svc.register_batch(
        session,
        item_id=body.item_id,
        warehouse_id=body.warehouse_id,
        qty=body.qty,
        manufacture_date=body.manufacture_date,
        expiry_date=body.expiry_date,
        batch_number=body.batch_number,
        supplier_id=body.supplier_id,
        notes=body.notes,
        ref=body.ref,
    )
    await session.commit()
    return BatchOut.model_validate(b)


@router.get("", response_model=BatchListOut)
async def list_batches(
    item_id: Optional[int] = Query(None),
    warehouse_id: Optional[int] = Query(None),
    status: Optional[BatchStatus] = Query(None),
    expiry_from: Optional[date] = Query(None),
    expiry_to: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(25, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
    svc: BatchService = Depends(get_batch_service),
) -> BatchListOut:
    rows, meta = await svc.list_batches(
        session,
        item_id=item_id,
        warehouse_id=warehouse_id,
        status=status,
        expiry_from=expiry_from,
        expiry_to=expiry_to,
        page=page,
        limit=limit,
    )
    return BatchListOut(data=[BatchOut.model_validate(r) for r in rows], meta=meta)


@router.post("/reconcile-expiry", response_model=ReconcileExpiryOut)
async def reconcile_expiry(
    body: ReconcileExpiryIn,
    session: AsyncSession = Depends(get_session),
    svc: BatchService = Depends(get_batch_service),
) -> ReconcileExpiryOut:
    as_of = body.as_of or utc_today()
    n = await svc.reconcile_expiry(session, as_of=as_of)
    await session.commit()
    return ReconcileExpiryOut(as_of=as_of, expired=n)


@router.get("/{batch_id}", response_model=BatchOut)
async def get_batch(
    batch_id: int,
    session: AsyncSession = Depends(get_session),
    svc: BatchService = Depends(get_batch_service),
) -> BatchOut:
    return BatchOut.model_validate(await svc.get_batch(session, batch_id))


@router.get("/{batch_id}/history", response_model=List[BatchTransactionOut])
async def batch_history(
    batch_id: int,
    session: AsyncSession = Depends(get_session),
    svc: BatchService = Depends(get_batch_service),
) -> List[BatchTransactionOut]:
    rows = await svc.batch_history(session, batch_id=batch_id)
    return [BatchTransactionOut.model_validate(r) for r in rows]


@router.patch("/{batch_id}", response_model=BatchOut)
async def update_batch(
    batch_id: int,
    body: BatchUpdate,
    session: AsyncSession = Depends(get_session),
    svc: BatchService = Depends(get_batch_service),
) -> BatchOut:
    b = await svc.update_batch(
        session,
        batch_id=batch_id,
        manufacture_date=body.manufacture_date,
        expiry_date=body.expiry_date,
        notes=body.notes,
    )
    await session.commit()
    return BatchOut.model_validate(b)


@router.post("/{batch_id}/adjust", response_model=BatchOut)
async def adjust_batch(
    batch_id: int,
    body: BatchAdjustIn,
    session: AsyncSession = Depends(get_session),
    svc: BatchService = Depends(get_batch_service),
) -> BatchOut:
    b = await svc.adjust(
        session, batch_id=batch_id, delta=body.delta, reason=body.reason, notes=body.notes
    )
    await session.commit()
    return BatchOut.model_validate(b)


@router.post("/{batch_id}/recall", response_model=BatchOut)
async def recall_batch(
    batch_id: int,
    body: BatchRecallIn,
    session: AsyncSession = Depends(get_session),
    svc: BatchService = Depends(get_batch_service),
) -> BatchOut:
    b = await svc.recall(session, batch_id=batch_id, notes=body.notes)
    await session.commit()
    return BatchOut.model_validate(b)
