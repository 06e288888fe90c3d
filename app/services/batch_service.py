# app/services/batch_service.py
from __future__ import annotations

import logging
import math
import uuid
from datetime import date, datetime
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import and_, case, func, select, true, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.batch import Batch
from app.models.batch_transaction import BatchTransaction
from app.models.enums import BatchStatus, BatchTxnType
from app.obs.metrics import batches_expired_total
from app.services.replenishment_errors import (
    BatchNotFound,
    BatchStateError,
    InsufficientBatchQuantity,
    InvalidBatchQuantity,
)
from app.utils.time import utc_today, utcnow

log = logging.getLogger("replenish.batches")

_NO_UPDATE = {"synchronize_session": False}


class BatchService:
    """
    Batch Registry (AsyncSession).

    Owns lot rows: quantity, expiry and status per (item_id, warehouse_id).

    Provides:
      - register_batch(...)      goods receipt of a new lot
      - reconcile_expiry(...)    ACTIVE -> EXPIRED for expiry_date <= as_of (idempotent)
      - get_available_batches()  unordered; ordering belongs to the allocator
      - deplete(...)             atomic conditional decrement, never negative
      - receive / adjust / recall / update_batch, listing and history

    Notes:
      - Methods flush but never commit; the caller owns the transaction.
      - Every quantity or status change appends a batch_transactions row.
      - Quantity writes are single conditional UPDATE statements, so the
        "enough left" check and the decrement are one atomic step in the
        database, across processes.
    """

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _select():
        # populate_existing: conditional UPDATEs bypass the identity map
        return select(Batch).execution_options(populate_existing=True)

    async def get_batch(self, session: AsyncSession, batch_id: int) -> Batch:
        row = (
            await session.execute(self._select().where(Batch.id == int(batch_id)))
        ).scalar_one_or_none()
        if row is None:
            raise BatchNotFound(f"batch {batch_id} not found")
        return row

    async def _find_by_number(
        self, session: AsyncSession, *, item_id: int, warehouse_id: int, batch_number: str
    ) -> Optional[Batch]:
        stmt = self._select().where(
            Batch.item_id == item_id,
            Batch.warehouse_id == warehouse_id,
            Batch.batch_number == batch_number,
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def register_batch(
        self,
        session: AsyncSession,
        *,
        item_id: int,
        warehouse_id: int,
        qty: int,
        manufacture_date: Optional[date] = None,
        expiry_date: Optional[date] = None,
        batch_number: Optional[str] = None,
        supplier_id: Optional[int] = None,
        notes: Optional[str] = None,
        ref: Optional[str] = None,
        received_at: Optional[datetime] = None,
    ) -> Batch:
        """
        Goods receipt of a brand-new lot. qty must be > 0.

        batch_number is unique per (item, warehouse); one is generated when
        omitted.
        """
        if qty is None or int(qty) <= 0:
            raise InvalidBatchQuantity(qty=int(qty or 0))
        if manufacture_date and expiry_date and expiry_date < manufacture_date:
            raise BatchStateError("expiry_date must not be before manufacture_date")

        number = (batch_number or "").strip() or self._generate_number()
        if await self._find_by_number(
            session, item_id=item_id, warehouse_id=warehouse_id, batch_number=number
        ):
            raise BatchStateError(
                f"batch number {number!r} already exists for item={item_id} wh={warehouse_id}"
            )

        b = Batch(
            item_id=int(item_id),
            warehouse_id=int(warehouse_id),
            batch_number=number,
            initial_qty=int(qty),
            qty_remaining=int(qty),
            version=1,
            manufacture_date=manufacture_date,
            expiry_date=expiry_date,
            status=BatchStatus.ACTIVE.value,
            supplier_id=supplier_id,
            notes=notes,
            created_at=received_at or utcnow(),
        )
        try:
            async with session.begin_nested():
                session.add(b)
                await session.flush()
        except IntegrityError as e:
            # concurrent receipt with the same number won the unique constraint
            raise BatchStateError(
                f"batch number {number!r} already exists for item={item_id} wh={warehouse_id}"
            ) from e

        self._record(
            session,
            batch_id=b.id,
            type_=BatchTxnType.RECEIVE,
            qty=int(qty),
            after_qty=int(qty),
            ref=ref,
            notes=notes or "initial batch receipt",
        )
        await session.flush()
        log.info(
            "batch registered id=%s item=%s wh=%s no=%s qty=%s exp=%s",
            b.id, item_id, warehouse_id, number, qty, expiry_date,
        )
        return b

    @staticmethod
    def _generate_number() -> str:
        return f"B{utc_today():%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"

    # ------------------------------------------------------------------
    # Expiry reconciliation
    # ------------------------------------------------------------------

    async def reconcile_expiry(self, session: AsyncSession, *, as_of: Optional[date] = None) -> int:
        """
        Flip every ACTIVE batch with expiry_date <= as_of to EXPIRED.
        Idempotent: a second run over the same as_of changes nothing.
        Returns the number of batches flipped by this call.
        """
        as_of = as_of or utc_today()
        stmt = (
            update(Batch)
            .where(
                Batch.status == BatchStatus.ACTIVE.value,
                Batch.expiry_date.isnot(None),
                Batch.expiry_date <= as_of,
            )
            .values(status=BatchStatus.EXPIRED.value)
            .returning(Batch.id, Batch.qty_remaining)
            .execution_options(**_NO_UPDATE)
        )
        rows = (await session.execute(stmt)).all()
        for r in rows:
            self._record(
                session,
                batch_id=int(r.id),
                type_=BatchTxnType.EXPIRE,
                qty=0,
                after_qty=int(r.qty_remaining),
                notes=f"expired as of {as_of.isoformat()}",
            )
        await session.flush()
        if rows:
            batches_expired_total.inc(len(rows))
            log.info("expiry reconcile as_of=%s flipped=%d", as_of, len(rows))
        return len(rows)

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    async def get_available_batches(
        self,
        session: AsyncSession,
        *,
        item_id: int,
        warehouse_id: int,
        status: BatchStatus = BatchStatus.ACTIVE,
        only_positive: bool = True,
    ) -> List[Batch]:
        """Batches of one item in one warehouse; unordered."""
        conds = [
            Batch.item_id == int(item_id),
            Batch.warehouse_id == int(warehouse_id),
            Batch.status == BatchStatus(status).value,
        ]
        if only_positive:
            conds.append(Batch.qty_remaining > 0)
        rows = (await session.execute(self._select().where(and_(*conds)))).scalars().all()
        return list(rows)

    # ------------------------------------------------------------------
    # Quantity writes
    # ------------------------------------------------------------------

    async def deplete(
        self,
        session: AsyncSession,
        *,
        batch_id: int,
        qty: int,
        ref: Optional[str] = None,
    ) -> int:
        """
        Atomically take qty from an ACTIVE batch. Returns the remaining qty.

        Raises InsufficientBatchQuantity when, at the moment of the UPDATE, the
        batch is no longer ACTIVE or holds less than qty. Hitting 0 sets
        DEPLETED in the same statement.
        """
        qty = int(qty)
        if qty <= 0:
            raise InvalidBatchQuantity(qty=qty)

        stmt = (
            update(Batch)
            .where(
                Batch.id == int(batch_id),
                Batch.status == BatchStatus.ACTIVE.value,
                Batch.qty_remaining >= qty,
            )
            .values(
                qty_remaining=Batch.qty_remaining - qty,
                version=Batch.version + 1,
                status=case(
                    (Batch.qty_remaining == qty, BatchStatus.DEPLETED.value),
                    else_=Batch.status,
                ),
            )
            .returning(Batch.qty_remaining)
            .execution_options(**_NO_UPDATE)
        )
        after = (await session.execute(stmt)).scalar_one_or_none()
        if after is None:
            current = (
                await session.execute(
                    select(Batch.qty_remaining, Batch.status).where(Batch.id == int(batch_id))
                )
            ).first()
            if current is None:
                raise BatchNotFound(f"batch {batch_id} not found")
            available = int(current.qty_remaining) if current.status == BatchStatus.ACTIVE else 0
            raise InsufficientBatchQuantity(batch_id=int(batch_id), requested=qty, available=available)

        self._record(
            session,
            batch_id=int(batch_id),
            type_=BatchTxnType.CONSUME,
            qty=-qty,
            after_qty=int(after),
            ref=ref,
        )
        await session.flush()
        return int(after)

    async def receive(
        self,
        session: AsyncSession,
        *,
        batch_id: int,
        qty: int,
        ref: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Batch:
        """
        Explicit receipt into an existing lot. DEPLETED lots become ACTIVE again;
        EXPIRED lots stay EXPIRED; RECALLED lots refuse receipts.
        """
        qty = int(qty)
        if qty <= 0:
            raise InvalidBatchQuantity(qty=qty)

        stmt = (
            update(Batch)
            .where(Batch.id == int(batch_id), Batch.status != BatchStatus.RECALLED.value)
            .values(
                qty_remaining=Batch.qty_remaining + qty,
                version=Batch.version + 1,
                status=case(
                    (Batch.status == BatchStatus.DEPLETED.value, BatchStatus.ACTIVE.value),
                    else_=Batch.status,
                ),
            )
            .returning(Batch.qty_remaining)
            .execution_options(**_NO_UPDATE)
        )
        after = (await session.execute(stmt)).scalar_one_or_none()
        if after is None:
            b = await self.get_batch(session, batch_id)
            raise BatchStateError(f"batch {b.id} is {b.status}; receipt refused")

        self._record(
            session,
            batch_id=int(batch_id),
            type_=BatchTxnType.RECEIVE,
            qty=qty,
            after_qty=int(after),
            ref=ref,
            notes=notes,
        )
        await session.flush()
        return await self.get_batch(session, batch_id)

    async def adjust(
        self,
        session: AsyncSession,
        *,
        batch_id: int,
        delta: int,
        reason: str,
        notes: Optional[str] = None,
    ) -> Batch:
        """
        Manual correction (count difference, scrap, damage). Never negative.
        ACTIVE <-> DEPLETED follows the quantity; EXPIRED / RECALLED stay put.
        """
        delta = int(delta)
        if delta == 0:
            raise InvalidBatchQuantity(qty=0)

        new_qty = Batch.qty_remaining + delta
        stmt = (
            update(Batch)
            .where(Batch.id == int(batch_id), Batch.qty_remaining + delta >= 0)
            .values(
                qty_remaining=new_qty,
                version=Batch.version + 1,
                status=case(
                    (
                        and_(Batch.status == BatchStatus.ACTIVE.value, new_qty == 0),
                        BatchStatus.DEPLETED.value,
                    ),
                    (
                        and_(Batch.status == BatchStatus.DEPLETED.value, new_qty > 0),
                        BatchStatus.ACTIVE.value,
                    ),
                    else_=Batch.status,
                ),
            )
            .returning(Batch.qty_remaining)
            .execution_options(**_NO_UPDATE)
        )
        after = (await session.execute(stmt)).scalar_one_or_none()
        if after is None:
            b = await self.get_batch(session, batch_id)
            raise InsufficientBatchQuantity(
                batch_id=int(batch_id), requested=-delta, available=int(b.qty_remaining)
            )

        text_notes = f"{reason}: {notes}" if notes else reason
        self._record(
            session,
            batch_id=int(batch_id),
            type_=BatchTxnType.ADJUSTMENT,
            qty=delta,
            after_qty=int(after),
            notes=text_notes,
        )
        await session.flush()
        return await self.get_batch(session, batch_id)

    async def recall(
        self, session: AsyncSession, *, batch_id: int, notes: Optional[str] = None
    ) -> Batch:
        b = await self.get_batch(session, batch_id)
        if b.status == BatchStatus.RECALLED:
            return b
        await session.execute(
            update(Batch)
            .where(Batch.id == int(batch_id))
            .values(status=BatchStatus.RECALLED.value, version=Batch.version + 1)
            .execution_options(**_NO_UPDATE)
        )
        self._record(
            session,
            batch_id=int(batch_id),
            type_=BatchTxnType.RECALL,
            qty=0,
            after_qty=int(b.qty_remaining),
            notes=notes,
        )
        await session.flush()
        log.warning("batch recalled id=%s item=%s wh=%s", b.id, b.item_id, b.warehouse_id)
        return await self.get_batch(session, batch_id)

    async def update_batch(
        self,
        session: AsyncSession,
        *,
        batch_id: int,
        manufacture_date: Optional[date] = None,
        expiry_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> Batch:
        """Metadata only. Status is never touched here; reconcile_expiry owns EXPIRED."""
        values = {}
        if manufacture_date is not None:
            values["manufacture_date"] = manufacture_date
        if expiry_date is not None:
            values["expiry_date"] = expiry_date
        if notes is not None:
            values["notes"] = notes

        b = await self.get_batch(session, batch_id)
        if not values:
            return b
        mfg = values.get("manufacture_date", b.manufacture_date)
        exp = values.get("expiry_date", b.expiry_date)
        if mfg and exp and exp < mfg:
            raise BatchStateError("expiry_date must not be before manufacture_date")

        await session.execute(
            update(Batch)
            .where(Batch.id == int(batch_id))
            .values(**values)
            .execution_options(**_NO_UPDATE)
        )
        await session.flush()
        return await self.get_batch(session, batch_id)

    # ------------------------------------------------------------------
    # Query surface
    # ------------------------------------------------------------------

    async def list_batches(
        self,
        session: AsyncSession,
        *,
        item_id: Optional[int] = None,
        warehouse_id: Optional[int] = None,
        status: Optional[BatchStatus] = None,
        expiry_from: Optional[date] = None,
        expiry_to: Optional[date] = None,
        page: int = 1,
        limit: int = 25,
    ) -> Tuple[List[Batch], dict]:
        """
        Filter by item / warehouse / status / expiry window (inclusive).
        Order: expiry_date ASC (NULL last), created_at DESC.
        """
        conds = []
        if item_id is not None:
            conds.append(Batch.item_id == int(item_id))
        if warehouse_id is not None:
            conds.append(Batch.warehouse_id == int(warehouse_id))
        if status is not None:
            conds.append(Batch.status == BatchStatus(status).value)
        if expiry_from is not None:
            conds.append(Batch.expiry_date >= expiry_from)
        if expiry_to is not None:
            conds.append(Batch.expiry_date <= expiry_to)

        page = max(1, int(page))
        limit = max(1, min(int(limit), 500))

        total = int(
            (await session.execute(select(func.count(Batch.id)).where(and_(true(), *conds)))).scalar()
            or 0
        )
        stmt = (
            self._select()
            .where(and_(true(), *conds))
            .order_by(
                Batch.expiry_date.is_(None),
                Batch.expiry_date.asc(),
                Batch.created_at.desc(),
                Batch.id.desc(),
            )
            .offset((page - 1) * limit)
            .limit(limit)
        )
        rows = list((await session.execute(stmt)).scalars().all())
        meta = {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit) if total else 0,
        }
        return rows, meta

    async def batch_history(self, session: AsyncSession, *, batch_id: int) -> Sequence[BatchTransaction]:
        await self.get_batch(session, batch_id)
        stmt = (
            select(BatchTransaction)
            .where(BatchTransaction.batch_id == int(batch_id))
            .order_by(BatchTransaction.created_at.desc(), BatchTransaction.id.desc())
        )
        return (await session.execute(stmt)).scalars().all()

    # ------------------------------------------------------------------
    # Audit trail
    # ------------------------------------------------------------------

    @staticmethod
    def _record(
        session: AsyncSession,
        *,
        batch_id: int,
        type_: BatchTxnType,
        qty: int,
        after_qty: int,
        ref: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> None:
        session.add(
            BatchTransaction(
                batch_id=int(batch_id),
                type=type_.value,
                qty=int(qty),
                after_qty=int(after_qty),
                ref=ref,
                notes=notes,
                created_at=utcnow(),
            )
        )
