# app/models/purchase_order.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.db.base import Base
from app.models.enums import PurchaseOrderStatus
from app.utils.time import utcnow

if TYPE_CHECKING:
    from app.models.purchase_order_line import PurchaseOrderLine


class PurchaseOrder(Base):
    """
    Purchase order header.

    Replenishment only ever writes DRAFT orders; approval, receiving and
    accounting belong to the purchasing module.

    - order_number     PO-000001 style, unique
    - vendor_id        preferred vendor (contact id)
    - source_ref       who asked for it, e.g. reorder-alert:42
    """

    __tablename__ = "purchase_orders"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)

    order_number: Mapped[str] = mapped_column(sa.String(32), nullable=False, unique=True)

    vendor_id: Mapped[int] = mapped_column(sa.Integer, nullable=False, index=True)
    warehouse_id: Mapped[Optional[int]] = mapped_column(sa.Integer, nullable=True, index=True)

    total_amount: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(14, 2), nullable=True)

    status: Mapped[str] = mapped_column(
        sa.String(32),
        nullable=False,
        default=PurchaseOrderStatus.DRAFT.value,
    )

    source_ref: Mapped[Optional[str]] = mapped_column(sa.String(128), nullable=True, index=True)
    remark: Mapped[Optional[str]] = mapped_column(sa.String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    lines: Mapped[List["PurchaseOrderLine"]] = relationship(
        "PurchaseOrderLine",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (sa.Index("ix_purchase_orders_wh_status", "warehouse_id", "status"),)
