# app/models/reorder_setting.py
from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base
from app.utils.time import utcnow


class ReorderSetting(Base):
    """
    Reorder policy for one item, optionally scoped to one warehouse.

    warehouse_id NULL means "any warehouse". When a warehouse-scoped row and an
    item-wide row both exist, the warehouse-scoped one wins; without any active
    row the coarse items.reorder_level / items.reorder_qty fields apply.
    """

    __tablename__ = "reorder_settings"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)

    item_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    warehouse_id: Mapped[int | None] = mapped_column(sa.Integer, nullable=True)

    # "<item>:<wh|*>" so that the item-wide row is unique as well
    scope_key: Mapped[str] = mapped_column(sa.String(64), nullable=False, unique=True)

    reorder_level: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    reorder_quantity: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    safety_stock: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    lead_time_days: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)

    preferred_vendor_id: Mapped[int | None] = mapped_column(sa.Integer, nullable=True)
    auto_reorder: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)

    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        sa.CheckConstraint(
            "reorder_level >= 0 AND reorder_quantity >= 0 "
            "AND safety_stock >= 0 AND lead_time_days >= 0",
            name="ck_reorder_settings_non_negative",
        ),
    )

    @staticmethod
    def make_scope_key(item_id: int, warehouse_id: int | None) -> str:
        return f"{int(item_id)}:{'*' if warehouse_id is None else int(warehouse_id)}"

    def __repr__(self) -> str:
        return (
            f"<ReorderSetting item={self.item_id} wh={self.warehouse_id} "
            f"level={self.reorder_level} qty={self.reorder_quantity} auto={self.auto_reorder}>"
        )
