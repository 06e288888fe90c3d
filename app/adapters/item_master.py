# app/adapters/item_master.py
from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.ports import ItemInfo, ItemMaster
from app.models.item import Item
from app.services.replenishment_errors import ItemNotFound


class SqlItemMaster(ItemMaster):
    async def get_item(self, session: AsyncSession, *, item_id: int) -> ItemInfo:
        row = (
            await session.execute(
                select(Item.cost_price, Item.unit).where(Item.id == int(item_id))
            )
        ).first()
        if row is None:
            raise ItemNotFound(f"item {item_id} not found")
        return ItemInfo(cost_price=Decimal(str(row.cost_price or 0)), unit=row.unit or "PCS")
