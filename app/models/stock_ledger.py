# app/models/stock_ledger.py
from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class StockLedger(Base):
    """
    Stock ledger (append-only, written by stock-issuing operations).

    Idempotency key: (reason, ref, ref_line, item_id, warehouse_id).
    Negative delta rows are the consumption history the demand forecaster reads.
    """

    __tablename__ = "stock_ledger"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)

    warehouse_id: Mapped[int] = mapped_column(sa.Integer, nullable=False, index=True)
    item_id: Mapped[int] = mapped_column(sa.Integer, nullable=False, index=True)

    reason: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    ref: Mapped[str] = mapped_column(sa.String(128), nullable=False)
    ref_line: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=1)

    delta: Mapped[int] = mapped_column(sa.Integer, nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        sa.UniqueConstraint(
            "reason",
            "ref",
            "ref_line",
            "item_id",
            "warehouse_id",
            name="uq_ledger_reason_ref_line_item_wh",
        ),
        sa.Index("ix_ledger_item_wh_occurred", "item_id", "warehouse_id", "occurred_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Ledger {self.reason} wh={self.warehouse_id} item={self.item_id} "
            f"delta={self.delta} at={self.occurred_at}>"
        )
