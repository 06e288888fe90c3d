# app/models/batch_transaction.py
from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base
from app.utils.time import utcnow


class BatchTransaction(Base):
    """
    Batch audit trail (append-only).

    - qty is signed: receipts positive, consumption negative
    - after_qty is qty_remaining right after the change
    - ref carries the caller's business reference (order / transfer id)
    """

    __tablename__ = "batch_transactions"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)

    batch_id: Mapped[int] = mapped_column(
        sa.Integer,
        sa.ForeignKey("batches.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(sa.String(16), nullable=False)
    qty: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    after_qty: Mapped[int] = mapped_column(sa.Integer, nullable=False)

    ref: Mapped[str | None] = mapped_column(sa.String(128), nullable=True)
    notes: Mapped[str | None] = mapped_column(sa.Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (sa.Index("ix_batch_txn_batch_created", "batch_id", "created_at"),)

    def __repr__(self) -> str:
        return f"<BatchTxn {self.type} batch={self.batch_id} qty={self.qty} after={self.after_qty}>"
