# app/adapters/purchasing.py
from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.domain.ports import Purchasing
from app.models.enums import PurchaseOrderStatus
from app.models.item import Item
from app.models.purchase_order import PurchaseOrder
from app.models.purchase_order_line import PurchaseOrderLine

log = logging.getLogger("replenish.purchasing")


class SqlPurchasing(Purchasing):
    """
    Writes a DRAFT purchase order (one line) in its own session.

    Not idempotent on its own: idempotency_key is stored as source_ref for
    traceability, the exactly-once guarantee lives on the alert.
    """

    def __init__(self, session_maker: Optional[async_sessionmaker[AsyncSession]] = None) -> None:
        if session_maker is None:
            from app.db.session import async_session_maker as session_maker
        self.session_maker = session_maker

    async def create_draft_purchase_order(
        self,
        *,
        vendor_id: int,
        item_id: int,
        quantity: int,
        warehouse_id: Optional[int],
        idempotency_key: str,
    ) -> int:
        async with self.session_maker() as session:
            async with session.begin():
                item = (
                    await session.execute(
                        select(Item.cost_price, Item.unit).where(Item.id == int(item_id))
                    )
                ).first()
                unit_price = Decimal(str(item.cost_price)) if item is not None else None
                line_amount = (unit_price * int(quantity)).quantize(Decimal("0.01")) if unit_price is not None else None

                po = PurchaseOrder(
                    order_number=f"TMP-{uuid.uuid4().hex[:20]}",
                    vendor_id=int(vendor_id),
                    warehouse_id=warehouse_id,
                    total_amount=line_amount,
                    status=PurchaseOrderStatus.DRAFT.value,
                    source_ref=idempotency_key,
                    remark="auto reorder",
                )
                session.add(po)
                await session.flush()
                po.order_number = f"PO-{po.id:06d}"
                session.add(
                    PurchaseOrderLine(
                        po_id=po.id,
                        line_no=1,
                        item_id=int(item_id),
                        unit=item.unit if item is not None else None,
                        qty_ordered=int(quantity),
                        unit_price=unit_price,
                        line_amount=line_amount,
                    )
                )
                await session.flush()
                po_id = int(po.id)

        log.info(
            "draft PO created id=%s vendor=%s item=%s qty=%s ref=%s",
            po_id, vendor_id, item_id, quantity, idempotency_key,
        )
        return po_id
