# tests/services/test_reorder_evaluator.py
from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from tests.helpers.fakes import FakeItems, FakeLedger
from tests.helpers.seed import add_issue, ensure_wh, ensure_wh_item, set_stock

from app.domain.ports import ConsumptionRecord, StockPosition
from app.services.reorder_evaluator import SENTINEL_NO_DEMAND, ReorderEvaluator
from app.services.reorder_factory import build_evaluator
from app.services.reorder_settings_service import (
    SOURCE_ITEM_FIELDS,
    SOURCE_ITEM_SETTING,
    SOURCE_WAREHOUSE_SETTING,
    ReorderSettingsService,
)
from app.services.replenishment_errors import ItemNotFound

pytestmark = pytest.mark.contract

AS_OF = date(2025, 3, 1)


@pytest.mark.asyncio
async def test_low_stock_item_with_fakes(session: AsyncSession):
    await ensure_wh_item(session, item=4001)
    await ReorderSettingsService().upsert(
        session,
        item_id=4001,
        warehouse_id=1,
        reorder_level=50,
        reorder_quantity=100,
        safety_stock=20,
        lead_time_days=7,
        preferred_vendor_id=7,
        auto_reorder=True,
    )
    ledger = FakeLedger(
        positions={(4001, 1): StockPosition(on_hand=50, committed=20, incoming=10)},
        history={(4001, 1): [ConsumptionRecord(AS_OF - timedelta(days=d), 10) for d in range(1, 31)]},
    )
    ev = ReorderEvaluator(ledger=ledger, items=FakeItems({4001: Decimal("2.50")}))

    res = await ev.evaluate(session, item_id=4001, warehouse_id=1, window_days=30, as_of=AS_OF)
    assert res.current_stock == 40
    assert res.avg_daily_demand == 10.0
    assert res.below_reorder is True
    assert res.coverage_days == 4
    assert res.suggested_qty == 100
    assert res.estimated_cost == Decimal("250.00")
    assert res.policy.source == SOURCE_WAREHOUSE_SETTING
    assert res.policy.can_auto_order


@pytest.mark.asyncio
async def test_sql_collaborators_end_to_end(session: AsyncSession):
    await ensure_wh_item(session, item=4002, cost_price="4.00", reorder_level=30, reorder_qty=25)
    await set_stock(session, item=4002, on_hand=20, committed=5, incoming=0)
    for d in range(1, 11):
        await add_issue(session, item=4002, day=AS_OF - timedelta(days=d), qty=3)

    res = await build_evaluator().evaluate(session, item_id=4002, warehouse_id=1, window_days=30, as_of=AS_OF)
    assert res.current_stock == 15
    assert res.avg_daily_demand == 1.0
    assert res.below_reorder is True
    assert res.coverage_days == 15
    assert res.suggested_qty == 25
    assert res.estimated_cost == Decimal("100.00")
    assert res.policy.source == SOURCE_ITEM_FIELDS
    assert not res.policy.can_auto_order


@pytest.mark.asyncio
async def test_no_demand_uses_sentinel(session: AsyncSession):
    await ensure_wh_item(session, item=4003, reorder_level=5, reorder_qty=10)
    ev = ReorderEvaluator(
        ledger=FakeLedger(positions={(4003, 1): StockPosition(100, 0, 0)}),
        items=FakeItems({4003: Decimal("1")}),
    )
    res = await ev.evaluate(session, item_id=4003, warehouse_id=1, as_of=AS_OF)
    assert res.coverage_days == SENTINEL_NO_DEMAND
    assert res.below_reorder is False


@pytest.mark.asyncio
async def test_policy_precedence_warehouse_then_item_then_fields(session: AsyncSession):
    await ensure_wh_item(session, item=4004, reorder_level=3, reorder_qty=4)
    svc = ReorderSettingsService()

    p = await svc.resolve_policy(session, item_id=4004, warehouse_id=1)
    assert (p.reorder_level, p.reorder_quantity, p.source) == (3, 4, SOURCE_ITEM_FIELDS)

    await svc.upsert(session, item_id=4004, reorder_level=10, reorder_quantity=20)
    p = await svc.resolve_policy(session, item_id=4004, warehouse_id=1)
    assert (p.reorder_level, p.source) == (10, SOURCE_ITEM_SETTING)

    await svc.upsert(session, item_id=4004, warehouse_id=1, reorder_level=99, reorder_quantity=1)
    p = await svc.resolve_policy(session, item_id=4004, warehouse_id=1)
    assert (p.reorder_level, p.source) == (99, SOURCE_WAREHOUSE_SETTING)
    # other warehouses still see the item-wide setting
    p = await svc.resolve_policy(session, item_id=4004, warehouse_id=2)
    assert (p.reorder_level, p.source) == (10, SOURCE_ITEM_SETTING)

    # an inactive scope is skipped
    await svc.upsert(session, item_id=4004, warehouse_id=1, is_active=False)
    p = await svc.resolve_policy(session, item_id=4004, warehouse_id=1)
    assert p.source == SOURCE_ITEM_SETTING


@pytest.mark.asyncio
async def test_upsert_updates_in_place_and_validates(session: AsyncSession):
    await ensure_wh_item(session, item=4005)
    svc = ReorderSettingsService()
    first = await svc.upsert(session, item_id=4005, warehouse_id=1, reorder_level=5)
    again = await svc.upsert(session, item_id=4005, warehouse_id=1, reorder_level=8, lead_time_days=3)
    assert first.id == again.id
    assert (again.reorder_level, again.lead_time_days) == (8, 3)

    with pytest.raises(ValueError):
        await svc.upsert(session, item_id=4005, reorder_level=-1)
    with pytest.raises(ValueError):
        await svc.upsert(session, item_id=4005, colour="red")
    with pytest.raises(ItemNotFound):
        await svc.upsert(session, item_id=999_404, reorder_level=1)


@pytest.mark.asyncio
async def test_list_targets_covers_settings_and_item_thresholds(session: AsyncSession):
    await ensure_wh_item(session, item=4006)
    await ensure_wh_item(session, item=4007, reorder_level=12)
    await ensure_wh_item(session, item=4008)  # no threshold anywhere
    svc = ReorderSettingsService()
    await svc.upsert(session, item_id=4006, warehouse_id=1, reorder_level=1)

    targets = await svc.list_targets(session)
    assert (4006, 1) in targets
    assert (4007, None) in targets
    assert all(i != 4008 for i, _ in targets)


@pytest.mark.asyncio
async def test_inactive_setting_falls_back_to_item_threshold_target(session: AsyncSession):
    await ensure_wh_item(session, item=4009, reorder_level=50)
    svc = ReorderSettingsService()
    await svc.upsert(session, item_id=4009, warehouse_id=1, reorder_level=5, is_active=False)

    policy = await svc.resolve_policy(session, item_id=4009, warehouse_id=None)
    assert policy.source == SOURCE_ITEM_FIELDS and policy.reorder_level == 50
    assert (4009, None) in await svc.list_targets(session)


@pytest.mark.asyncio
async def test_item_wide_policy_is_split_across_unscoped_warehouses(session: AsyncSession):
    await ensure_wh(session, wh=2)
    await ensure_wh_item(session, item=4010)
    await set_stock(session, item=4010, wh=1, on_hand=5)
    await set_stock(session, item=4010, wh=2, on_hand=5)
    svc = ReorderSettingsService()
    await svc.upsert(session, item_id=4010, reorder_level=20)
    await svc.upsert(session, item_id=4010, warehouse_id=1, reorder_level=30)

    targets = [t for t in await svc.list_targets(session) if t[0] == 4010]
    assert targets == [(4010, 1), (4010, 2)]
    policy = await svc.resolve_policy(session, item_id=4010, warehouse_id=2)
    assert policy.source == SOURCE_ITEM_SETTING


@pytest.mark.asyncio
async def test_unknown_item_raises(session: AsyncSession):
    with pytest.raises(ItemNotFound):
        await build_evaluator().evaluate(session, item_id=404_404, warehouse_id=1, as_of=AS_OF)
