# app/models/reorder_alert.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base
from app.models.enums import AlertStatus
from app.utils.time import utcnow


class ReorderAlert(Base):
    """
    Reorder alert lifecycle row.

    De-duplication:
        open_key = "<item>:<wh|*>" while status is PENDING / ACKNOWLEDGED and
        NULL once terminal. The unique constraint on open_key is the durable
        "at most one open alert per (item, warehouse)" guarantee; NULLs never
        collide, so terminal history is unbounded.

    Purchase-order guard:
        po_claim_token / po_claimed_at form a lease taken with a conditional
        UPDATE before the purchasing call. PO_CREATED is only written by the
        holder of the token.
    """

    __tablename__ = "reorder_alerts"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)

    item_id: Mapped[int] = mapped_column(sa.Integer, nullable=False, index=True)
    warehouse_id: Mapped[Optional[int]] = mapped_column(sa.Integer, nullable=True)

    status: Mapped[str] = mapped_column(
        sa.String(16), nullable=False, default=AlertStatus.PENDING.value, index=True
    )
    open_key: Mapped[Optional[str]] = mapped_column(sa.String(64), nullable=True, unique=True)

    suggested_qty: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    current_stock: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    reorder_level: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)

    purchase_order_id: Mapped[Optional[int]] = mapped_column(sa.Integer, nullable=True)
    po_claim_token: Mapped[Optional[str]] = mapped_column(sa.String(64), nullable=True)
    po_claimed_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    last_error: Mapped[Optional[str]] = mapped_column(sa.String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    notified_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )

    __table_args__ = (sa.Index("ix_reorder_alerts_item_wh_status", "item_id", "warehouse_id", "status"),)

    @staticmethod
    def make_open_key(item_id: int, warehouse_id: int | None) -> str:
        return f"{int(item_id)}:{'*' if warehouse_id is None else int(warehouse_id)}"

    def __repr__(self) -> str:
        return (
            f"<ReorderAlert id={self.id} item={self.item_id} wh={self.warehouse_id} "
            f"status={self.status} qty={self.suggested_qty}>"
        )
