# app/services/reorder_settings_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.item import Item
from app.models.reorder_setting import ReorderSetting
from app.models.stock_level import StockLevel
from app.services.replenishment_errors import ItemNotFound

log = logging.getLogger("replenish.settings")

_NUMERIC_FIELDS = ("reorder_level", "reorder_quantity", "safety_stock", "lead_time_days")
_EDITABLE_FIELDS = _NUMERIC_FIELDS + ("preferred_vendor_id", "auto_reorder", "is_active")
_CLEARABLE_FIELDS = ("preferred_vendor_id",)

SOURCE_WAREHOUSE_SETTING = "setting:warehouse"
SOURCE_ITEM_SETTING = "setting:item"
SOURCE_ITEM_FIELDS = "item"


@dataclass(frozen=True)
class ReorderPolicy:
    """Effective thresholds for one (item, warehouse) after precedence."""

    item_id: int
    warehouse_id: Optional[int]
    reorder_level: int
    reorder_quantity: int
    safety_stock: int = 0
    lead_time_days: int = 0
    preferred_vendor_id: Optional[int] = None
    auto_reorder: bool = False
    source: str = SOURCE_ITEM_FIELDS

    @property
    def can_auto_order(self) -> bool:
        return bool(self.auto_reorder and self.preferred_vendor_id is not None)


class ReorderSettingsService:
    """
    Reorder policy configuration.

    Precedence for an (item, warehouse) pair:
      1) active setting scoped to that warehouse
      2) active item-wide setting (warehouse_id NULL)
      3) items.reorder_level / items.reorder_qty
    """

    # ---------------------------------------------------------------
    # Read
    # ---------------------------------------------------------------
    async def get_setting(
        self, session: AsyncSession, *, item_id: int, warehouse_id: Optional[int] = None
    ) -> Optional[ReorderSetting]:
        key = ReorderSetting.make_scope_key(item_id, warehouse_id)
        stmt = (
            select(ReorderSetting)
            .where(ReorderSetting.scope_key == key)
            .execution_options(populate_existing=True)
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    async def resolve_policy(
        self, session: AsyncSession, *, item_id: int, warehouse_id: Optional[int] = None
    ) -> ReorderPolicy:
        keys = [ReorderSetting.make_scope_key(item_id, None)]
        if warehouse_id is not None:
            keys.insert(0, ReorderSetting.make_scope_key(item_id, warehouse_id))

        rows = (
            await session.execute(
                select(ReorderSetting).where(
                    ReorderSetting.scope_key.in_(keys),
                    ReorderSetting.is_active.is_(True),
                )
            )
        ).scalars().all()
        by_key = {r.scope_key: r for r in rows}

        for key in keys:
            s = by_key.get(key)
            if s is None:
                continue
            return ReorderPolicy(
                item_id=int(item_id),
                warehouse_id=warehouse_id,
                reorder_level=int(s.reorder_level),
                reorder_quantity=int(s.reorder_quantity),
                safety_stock=int(s.safety_stock),
                lead_time_days=int(s.lead_time_days),
                preferred_vendor_id=s.preferred_vendor_id,
                auto_reorder=bool(s.auto_reorder),
                source=SOURCE_WAREHOUSE_SETTING if s.warehouse_id is not None else SOURCE_ITEM_SETTING,
            )

        item = (
            await session.execute(
                select(Item.reorder_level, Item.reorder_qty).where(Item.id == int(item_id))
            )
        ).first()
        if item is None:
            raise ItemNotFound(f"item {item_id} not found")
        return ReorderPolicy(
            item_id=int(item_id),
            warehouse_id=warehouse_id,
            reorder_level=int(item.reorder_level or 0),
            reorder_quantity=int(item.reorder_qty or 0),
        )

    async def list_targets(self, session: AsyncSession) -> List[Tuple[int, Optional[int]]]:
        """
        (item_id, warehouse_id) pairs a sweep evaluates.

        - every active warehouse-scoped setting
        - the item-wide policy (active item-wide setting, or item fields with
          reorder_level > 0 on an enabled tracked item) as (item, None), unless
          the item also has warehouse-scoped settings: then the item-wide policy
          is evaluated per remaining warehouse with stock, so no warehouse is
          counted under two policies
        """
        active = (
            await session.execute(
                select(ReorderSetting.item_id, ReorderSetting.warehouse_id)
                .where(ReorderSetting.is_active.is_(True))
                .order_by(ReorderSetting.item_id, ReorderSetting.id)
            )
        ).all()
        scoped: Dict[int, List[int]] = {}
        item_wide = set()
        for item_id, warehouse_id in active:
            if warehouse_id is None:
                item_wide.add(int(item_id))
            else:
                scoped.setdefault(int(item_id), []).append(int(warehouse_id))

        active_setting = select(ReorderSetting.item_id).where(ReorderSetting.is_active.is_(True))
        by_item_fields = (
            await session.execute(
                select(Item.id).where(
                    Item.enabled.is_(True),
                    Item.track_inventory.is_(True),
                    Item.reorder_level > 0,
                    Item.id.not_in(
                        active_setting.where(ReorderSetting.warehouse_id.is_(None))
                    ),
                )
            )
        ).scalars().all()
        item_wide.update(int(i) for i in by_item_fields)

        stocked: Dict[int, List[int]] = {}
        if scoped:
            rows = (
                await session.execute(
                    select(StockLevel.item_id, StockLevel.warehouse_id)
                    .where(StockLevel.item_id.in_(list(scoped)))
                    .order_by(StockLevel.item_id, StockLevel.warehouse_id)
                )
            ).all()
            for item_id, warehouse_id in rows:
                stocked.setdefault(int(item_id), []).append(int(warehouse_id))

        targets: List[Tuple[int, Optional[int]]] = []
        for item_id in sorted(set(scoped) | item_wide):
            own = scoped.get(item_id, [])
            targets.extend((item_id, w) for w in own)
            if item_id not in item_wide:
                continue
            if not own:
                targets.append((item_id, None))
            else:
                targets.extend(
                    (item_id, w) for w in stocked.get(item_id, []) if w not in own
                )
        return targets

    # ---------------------------------------------------------------
    # Write
    # ---------------------------------------------------------------
    async def upsert(
        self,
        session: AsyncSession,
        *,
        item_id: int,
        warehouse_id: Optional[int] = None,
        **fields: Any,
    ) -> ReorderSetting:
        """
        Create or update one scope. Unknown keys are rejected. None clears a
        clearable field (preferred_vendor_id) and is ignored for the rest.
        """
        unknown = set(fields) - set(_EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"unknown reorder setting fields: {sorted(unknown)}")
        values = {k: v for k, v in fields.items() if v is not None or k in _CLEARABLE_FIELDS}
        for k in _NUMERIC_FIELDS:
            if k in values and int(values[k]) < 0:
                raise ValueError(f"{k} must be >= 0")

        exists = (
            await session.execute(select(Item.id).where(Item.id == int(item_id)))
        ).scalar_one_or_none()
        if exists is None:
            raise ItemNotFound(f"item {item_id} not found")

        row = await self.get_setting(session, item_id=item_id, warehouse_id=warehouse_id)
        if row is None:
            row = ReorderSetting(
                item_id=int(item_id),
                warehouse_id=warehouse_id,
                scope_key=ReorderSetting.make_scope_key(item_id, warehouse_id),
                **values,
            )
            try:
                async with session.begin_nested():
                    session.add(row)
                    await session.flush()
            except IntegrityError:
                # concurrent writer created the scope first; update theirs
                row = await self.get_setting(session, item_id=item_id, warehouse_id=warehouse_id)
                if row is None:
                    raise
                for k, v in values.items():
                    setattr(row, k, v)
                await session.flush()
        else:
            for k, v in values.items():
                setattr(row, k, v)
            await session.flush()

        log.info("reorder setting upserted item=%s wh=%s %s", item_id, warehouse_id, values)
        return row

    async def bulk_upsert(
        self, session: AsyncSession, rows: Iterable[Dict[str, Any]]
    ) -> List[ReorderSetting]:
        out: List[ReorderSetting] = []
        for r in rows:
            data = dict(r)
            item_id = data.pop("item_id")
            warehouse_id = data.pop("warehouse_id", None)
            out.append(await self.upsert(session, item_id=item_id, warehouse_id=warehouse_id, **data))
        return out
