# -*- coding: utf-8 -*-
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession


@dataclass(frozen=True)
class StockPosition:
    on_hand: int
    committed: int
    incoming: int

    @property
    def current_stock(self) -> int:
        return int(self.on_hand) - int(self.committed) + int(self.incoming)


@dataclass(frozen=True)
class ConsumptionRecord:
    date: date
    quantity: int


@dataclass(frozen=True)
class ItemInfo:
    cost_price: Decimal
    unit: str


class StockLedgerReader(Protocol):
    async def get_position(
        self,
        session: AsyncSession,
        *,
        item_id: int,
        warehouse_id: Optional[int],
    ) -> StockPosition:
        ...

    async def get_consumption_history(
        self,
        session: AsyncSession,
        *,
        item_id: int,
        warehouse_id: Optional[int],
        from_date: date,
        to_date: date,
    ) -> List[ConsumptionRecord]:
        """Chronologically ordered, from_date inclusive, to_date exclusive."""
        ...


class ItemMaster(Protocol):
    async def get_item(self, session: AsyncSession, *, item_id: int) -> ItemInfo:
        ...


class Purchasing(Protocol):
    async def create_draft_purchase_order(
        self,
        *,
        vendor_id: int,
        item_id: int,
        quantity: int,
        warehouse_id: Optional[int],
        idempotency_key: str,
    ) -> int:
        """Returns the purchase order id. Not required to be idempotent."""
        ...
