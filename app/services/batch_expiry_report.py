# app/services/batch_expiry_report.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.batch import Batch
from app.models.enums import BatchStatus
from app.models.item import Item
from app.utils.time import utc_today


@dataclass(frozen=True)
class ExpiryRow:
    batch_id: int
    batch_number: str
    item_id: int
    sku: Optional[str]
    item_name: Optional[str]
    warehouse_id: int
    qty_remaining: int
    expiry_date: Optional[date]
    status: str
    days: Optional[int]


async def _rows(session: AsyncSession, where, *, as_of: date, expired: bool) -> List[ExpiryRow]:
    stmt = (
        select(Batch, Item.sku, Item.name)
        .join(Item, Item.id == Batch.item_id)
        .where(where)
        .order_by(Batch.expiry_date.asc(), Batch.id.asc())
    )
    out: List[ExpiryRow] = []
    for b, sku, name in (await session.execute(stmt)).all():
        if b.expiry_date is None:
            days = None
        else:
            days = (as_of - b.expiry_date).days if expired else (b.expiry_date - as_of).days
        out.append(
            ExpiryRow(
                batch_id=b.id,
                batch_number=b.batch_number,
                item_id=b.item_id,
                sku=sku,
                item_name=name,
                warehouse_id=b.warehouse_id,
                qty_remaining=b.qty_remaining,
                expiry_date=b.expiry_date,
                status=b.status,
                days=days,
            )
        )
    return out


def _scope(item_id: Optional[int], warehouse_id: Optional[int]) -> list:
    conds = []
    if item_id is not None:
        conds.append(Batch.item_id == int(item_id))
    if warehouse_id is not None:
        conds.append(Batch.warehouse_id == int(warehouse_id))
    return conds


async def expiring_batches(
    session: AsyncSession,
    *,
    within_days: int,
    as_of: Optional[date] = None,
    item_id: Optional[int] = None,
    warehouse_id: Optional[int] = None,
) -> List[ExpiryRow]:
    """ACTIVE lots with stock expiring in (as_of, as_of + within_days]; days = days until expiry."""
    as_of = as_of or utc_today()
    where = and_(
        Batch.status == BatchStatus.ACTIVE.value,
        Batch.qty_remaining > 0,
        Batch.expiry_date > as_of,
        Batch.expiry_date <= as_of + timedelta(days=int(within_days)),
        *_scope(item_id, warehouse_id),
    )
    return await _rows(session, where, as_of=as_of, expired=False)


async def expired_batches(
    session: AsyncSession,
    *,
    as_of: Optional[date] = None,
    item_id: Optional[int] = None,
    warehouse_id: Optional[int] = None,
) -> List[ExpiryRow]:
    """
    EXPIRED lots, plus ACTIVE lots with stock past expiry that the daily
    reconcile has not flipped yet; days = days since expiry.
    """
    as_of = as_of or utc_today()
    where = and_(
        or_(
            Batch.status == BatchStatus.EXPIRED.value,
            and_(
                Batch.status == BatchStatus.ACTIVE.value,
                Batch.qty_remaining > 0,
                Batch.expiry_date <= as_of,
            ),
        ),
        *_scope(item_id, warehouse_id),
    )
    return await _rows(session, where, as_of=as_of, expired=True)
