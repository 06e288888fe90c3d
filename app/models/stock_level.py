# app/models/stock_level.py
from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class StockLevel(Base):
    """
    Stock position per (item_id, warehouse_id), maintained by the stock ledger:

    - on_hand     physically present
    - committed   promised to open orders
    - incoming    on open purchase orders
    """

    __tablename__ = "stock_levels"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)

    item_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False
    )
    warehouse_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False
    )

    on_hand: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    committed: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    incoming: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)

    __table_args__ = (
        sa.UniqueConstraint("item_id", "warehouse_id", name="uq_stock_levels_item_wh"),
    )

    def __repr__(self) -> str:
        return (
            f"<StockLevel item={self.item_id} wh={self.warehouse_id} "
            f"on_hand={self.on_hand} committed={self.committed} incoming={self.incoming}>"
        )
