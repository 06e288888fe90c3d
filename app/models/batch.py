# app/models/batch.py
from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.enums import BatchStatus
from app.utils.time import utcnow


class Batch(Base):
    """
    Lot record, one row per (item_id, warehouse_id, batch_number).

    Quantity:
        - initial_qty       received quantity (audit only)
        - qty_remaining     decremented by allocation commits, incremented by receipts
        - version           bumped on every quantity change (optimistic check)

    Status rules (see BatchStatus):
        - DEPLETED iff qty_remaining == 0, unless EXPIRED / RECALLED
        - EXPIRED never reverts

    Rows are never deleted.
    """

    __tablename__ = "batches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    item_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("items.id", ondelete="RESTRICT"),
        nullable=False,
    )
    warehouse_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("warehouses.id", ondelete="RESTRICT"),
        nullable=False,
    )

    batch_number: Mapped[str] = mapped_column(String(64), nullable=False)

    initial_qty: Mapped[int] = mapped_column(Integer, nullable=False)
    qty_remaining: Mapped[int] = mapped_column(Integer, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    manufacture_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=BatchStatus.ACTIVE.value,
    )

    supplier_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint(
            "item_id",
            "warehouse_id",
            "batch_number",
            name="uq_batches_item_wh_number",
        ),
        CheckConstraint("qty_remaining >= 0", name="ck_batches_qty_non_negative"),
        Index("ix_batches_item_wh_status", "item_id", "warehouse_id", "status"),
        Index("ix_batches_expiry_date", "expiry_date"),
        Index("ix_batches_status", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Batch id={self.id} "
            f"item={self.item_id} wh={self.warehouse_id} "
            f"no={self.batch_number} qty={self.qty_remaining} "
            f"exp={self.expiry_date} status={self.status}>"
        )
