# app/models/item.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, func, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class Item(Base):
    """
    Item master (read by the engine, owned by item CRUD):

        id                INTEGER PRIMARY KEY
        sku               VARCHAR(64) UNIQUE NOT NULL
        name              VARCHAR(128) NOT NULL
        unit              VARCHAR(8) NOT NULL DEFAULT 'PCS'
        cost_price        NUMERIC(14,4) NOT NULL DEFAULT 0
        reorder_level     INTEGER NOT NULL DEFAULT 0   (coarse fallback threshold)
        reorder_qty       INTEGER NOT NULL DEFAULT 0   (coarse fallback quantity)
        track_inventory   BOOLEAN NOT NULL DEFAULT true
        enabled           BOOLEAN NOT NULL DEFAULT true
    """

    __tablename__ = "items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    sku: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    unit: Mapped[str] = mapped_column(String(8), nullable=False, server_default=text("'PCS'"))

    cost_price: Mapped[Decimal] = mapped_column(
        Numeric(14, 4), nullable=False, server_default=text("0")
    )

    reorder_level: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    reorder_qty: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))

    track_inventory: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("true")
    )
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Item id={self.id} sku={self.sku!r}>"
