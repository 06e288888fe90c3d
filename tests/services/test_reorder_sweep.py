# tests/services/test_reorder_sweep.py
from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import date, timedelta

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from tests.helpers.fakes import FakeLedger
from tests.helpers.seed import add_issue, ensure_wh_item, seed_batch, set_stock

from app.domain.ports import StockPosition
from app.services.batch_expiry_report import expired_batches, expiring_batches
from app.services.batch_service import BatchService
from app.services.reorder_factory import build_alert_service, build_evaluator
from app.services.reorder_report_service import ReorderReportService
from app.services.reorder_settings_service import ReorderSettingsService
from app.services.reorder_sweep import run_reorder_sweep

pytestmark = pytest.mark.contract

AS_OF = date(2025, 3, 1)


async def _setting(session, item, *, level=50, qty=100, auto=False, vendor=None):
    await ensure_wh_item(session, item=item)
    await ReorderSettingsService().upsert(
        session,
        item_id=item,
        warehouse_id=1,
        reorder_level=level,
        reorder_quantity=qty,
        auto_reorder=auto,
        preferred_vendor_id=vendor,
    )


async def _three_items(session: AsyncSession) -> None:
    await _setting(session, 6001, auto=True, vendor=7)
    await set_stock(session, item=6001, on_hand=10)
    await _setting(session, 6002)
    await set_stock(session, item=6002, on_hand=20)
    await _setting(session, 6003)
    await set_stock(session, item=6003, on_hand=900)
    await session.commit()


@pytest.mark.asyncio
async def test_sweep_opens_alerts_and_orders(session: AsyncSession, fake_purchasing):
    await _three_items(session)
    svc = build_alert_service(purchasing=fake_purchasing)

    report = await run_reorder_sweep(session, svc, as_of=AS_OF)
    assert report.targets == 3
    assert report.evaluated == 3
    assert report.below_reorder == 2
    assert report.alerts_created == 2
    assert report.purchase_orders_created == 1
    assert report.purchasing_failures == 0
    assert not report.cancelled and not report.aborted
    assert len(fake_purchasing.calls) == 1 and fake_purchasing.calls[0]["item_id"] == 6001

    # the still-open alert is not duplicated by the next pass
    again = await run_reorder_sweep(session, svc, as_of=AS_OF, targets=[(6002, 1)])
    assert again.below_reorder == 1 and again.alerts_created == 0
    rows, _ = await svc.list_alerts(session, item_id=6002)
    assert len(rows) == 1


@pytest.mark.asyncio
async def test_sweep_without_auto_order_only_alerts(session: AsyncSession, fake_purchasing):
    await _three_items(session)
    svc = build_alert_service(purchasing=fake_purchasing)
    report = await run_reorder_sweep(session, svc, as_of=AS_OF, auto_order=False)
    assert report.alerts_created == 2
    assert report.purchase_orders_created == 0
    assert fake_purchasing.calls == []


@pytest.mark.asyncio
async def test_sweep_counts_purchasing_failures(session: AsyncSession, fake_purchasing):
    await _three_items(session)
    fake_purchasing.fail_times = 1
    report = await run_reorder_sweep(session, build_alert_service(purchasing=fake_purchasing), as_of=AS_OF)
    assert report.purchasing_failures == 1
    assert report.purchase_orders_created == 0
    assert report.alerts_created == 2


@pytest.mark.asyncio
async def test_sweep_stops_between_items_when_cancelled(session: AsyncSession, fake_purchasing):
    await _three_items(session)
    cancel = asyncio.Event()
    cancel.set()
    report = await run_reorder_sweep(
        session, build_alert_service(purchasing=fake_purchasing), as_of=AS_OF, cancel_event=cancel
    )
    assert report.cancelled
    assert report.evaluated == 0


@pytest.mark.asyncio
async def test_sweep_skips_unknown_items(session: AsyncSession, fake_purchasing):
    await _three_items(session)
    report = await run_reorder_sweep(
        session,
        build_alert_service(purchasing=fake_purchasing),
        as_of=AS_OF,
        targets=[(404_404, 1), (6002, 1)],
    )
    assert report.skipped == 1
    assert report.evaluated == 1 and report.alerts_created == 1


@pytest.mark.asyncio
async def test_store_error_aborts_but_keeps_finished_items(session: AsyncSession, fake_purchasing):
    await _three_items(session)
    ledger = FakeLedger(
        positions={(6002, 1): StockPosition(5, 0, 0), (6003, 1): StockPosition(5, 0, 0)},
        error=OperationalError("SELECT stock_levels", {}, Exception("connection lost")),
        error_item=6001,
    )
    svc = build_alert_service(ledger=ledger, purchasing=fake_purchasing)

    report = await run_reorder_sweep(
        session, svc, as_of=AS_OF, targets=[(6002, 1), (6001, 1), (6003, 1)]
    )
    assert report.aborted
    assert report.evaluated == 1 and report.alerts_created == 1

    assert await svc.get_open_alert(session, item_id=6002, warehouse_id=1) is not None
    assert await svc.get_open_alert(session, item_id=6003, warehouse_id=1) is None


@pytest.mark.asyncio
async def test_sweep_covers_item_whose_only_setting_is_inactive(session: AsyncSession, fake_purchasing):
    await ensure_wh_item(session, item=6010, reorder_level=50, reorder_qty=20)
    await ReorderSettingsService().upsert(
        session, item_id=6010, warehouse_id=1, reorder_level=5, is_active=False
    )
    await set_stock(session, item=6010, on_hand=5)
    await session.commit()

    svc = build_alert_service(purchasing=fake_purchasing)
    report = await run_reorder_sweep(session, svc, as_of=AS_OF)
    assert report.evaluated == 1 and report.alerts_created == 1
    alert = await svc.get_open_alert(session, item_id=6010, warehouse_id=None)
    assert alert is not None and alert.suggested_qty == 20


@pytest.mark.asyncio
async def test_one_shortage_under_two_scopes_orders_once(session: AsyncSession, fake_purchasing):
    await ensure_wh_item(session, item=6011)
    settings = ReorderSettingsService()
    for wh in (None, 1):
        await settings.upsert(
            session,
            item_id=6011,
            warehouse_id=wh,
            reorder_level=50,
            reorder_quantity=100,
            auto_reorder=True,
            preferred_vendor_id=7,
        )
    await set_stock(session, item=6011, on_hand=5)
    await session.commit()

    svc = build_alert_service(purchasing=fake_purchasing)
    report = await run_reorder_sweep(session, svc, as_of=AS_OF)
    assert report.alerts_created == 1
    assert report.purchase_orders_created == 1
    assert [(c["warehouse_id"], c["quantity"]) for c in fake_purchasing.calls] == [(1, 100)]


class _AutoReorderSwitchedOff(ReorderSettingsService):
    """First resolution sees auto reorder on; later ones see it switched off."""

    def __init__(self) -> None:
        self.calls = 0

    async def resolve_policy(self, session, *, item_id, warehouse_id=None):
        policy = await super().resolve_policy(session, item_id=item_id, warehouse_id=warehouse_id)
        self.calls += 1
        return policy if self.calls == 1 else replace(policy, auto_reorder=False)


@pytest.mark.asyncio
async def test_policy_switched_off_mid_item_does_not_abort_sweep(session: AsyncSession, fake_purchasing):
    await _three_items(session)
    svc = build_alert_service(purchasing=fake_purchasing)
    svc.evaluator.settings_service = _AutoReorderSwitchedOff()

    report = await run_reorder_sweep(session, svc, as_of=AS_OF, targets=[(6001, 1), (6002, 1)])
    assert not report.aborted
    assert report.evaluated == 2 and report.alerts_created == 2
    assert report.purchase_orders_created == 0
    assert fake_purchasing.calls == []

# ---------------------------------------------------------------
# Reports
# ---------------------------------------------------------------


@pytest.mark.asyncio
async def test_reorder_report_lists_below_items_by_coverage(session: AsyncSession, fake_purchasing):
    await _three_items(session)
    for d in range(1, 31):
        await add_issue(session, item=6001, day=AS_OF - timedelta(days=d), qty=5)
        await add_issue(session, item=6002, day=AS_OF - timedelta(days=d), qty=1)
    await session.commit()
    await run_reorder_sweep(session, build_alert_service(purchasing=fake_purchasing), as_of=AS_OF)

    report = await ReorderReportService(build_evaluator()).build(session, as_of=AS_OF)
    assert sorted(r["item_id"] for r in report.items_below_reorder) == [6001, 6002]
    # 6001: 10 / 5 = 2 days; 6002: 20 / 1 = 20 days
    assert [r["item_id"] for r in report.stock_coverage] == [6001, 6002]
    assert report.stock_coverage[0]["coverage_days"] == 2
    assert report.items_below_reorder[0]["sku"] == "SKU-6001"
    assert report.summary == {
        "items_below_reorder": 2,
        "pending_alerts": 1,
        "acknowledged_alerts": 0,
        "po_created_alerts": 1,
        "auto_reorder_active": 1,
    }


@pytest.mark.asyncio
async def test_batch_expiry_report_windows(session: AsyncSession):
    await ensure_wh_item(session, item=6101)
    await seed_batch(session, item=6101, code="PAST", qty=4, expiry=AS_OF - timedelta(days=3))
    await seed_batch(session, item=6101, code="TODAY", qty=4, expiry=AS_OF)
    await seed_batch(session, item=6101, code="SOON", qty=4, expiry=AS_OF + timedelta(days=5))
    await seed_batch(session, item=6101, code="LATER", qty=4, expiry=AS_OF + timedelta(days=60))
    empty = await seed_batch(session, item=6101, code="EMPTY", qty=1, expiry=AS_OF + timedelta(days=2))
    await BatchService().deplete(session, batch_id=empty.id, qty=1)

    soon = await expiring_batches(session, within_days=30, as_of=AS_OF, item_id=6101)
    assert [(r.batch_number, r.days) for r in soon] == [("SOON", 5)]

    gone = await expired_batches(session, as_of=AS_OF, item_id=6101)
    assert [(r.batch_number, r.days) for r in gone] == [("PAST", 3), ("TODAY", 0)]
    assert gone[0].sku == "SKU-6101"
