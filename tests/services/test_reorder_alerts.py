# tests/services/test_reorder_alerts.py
from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from tests.helpers.fakes import FakePurchasing
from tests.helpers.seed import ensure_wh_item, set_stock

from app.models.enums import AlertStatus
from app.models.reorder_alert import ReorderAlert
from app.services.reorder_alert_service import (
    PO_ALREADY_CREATED,
    PO_CREATED,
    PO_FAILED,
    PO_IN_PROGRESS,
    PO_NOT_ELIGIBLE,
    PO_NOT_FOUND,
)
from app.services.reorder_factory import build_alert_service
from app.services.reorder_settings_service import ReorderSettingsService
from app.services.replenishment_errors import (
    InvalidAlertTransition,
    PurchasingUnavailable,
    ReorderPolicyMissing,
)
from app.utils.time import utcnow

pytestmark = pytest.mark.contract


async def _low_stock(
    session: AsyncSession, item: int, *, on_hand: int = 10, auto: bool = True, vendor: int | None = 7
) -> None:
    await ensure_wh_item(session, item=item)
    await ReorderSettingsService().upsert(
        session,
        item_id=item,
        warehouse_id=1,
        reorder_level=50,
        reorder_quantity=100,
        preferred_vendor_id=vendor,
        auto_reorder=auto,
    )
    await set_stock(session, item=item, on_hand=on_hand)
    await session.commit()


async def _open_alert(session, svc, item: int) -> ReorderAlert:
    out = await svc.process_item(session, item_id=item, warehouse_id=1, auto_order=False)
    assert out.alert is not None
    return out.alert


# ---------------------------------------------------------------
# Alert lifecycle
# ---------------------------------------------------------------


@pytest.mark.asyncio
async def test_low_stock_opens_one_alert_and_refreshes_it(session: AsyncSession, fake_purchasing):
    await _low_stock(session, 5001)
    svc = build_alert_service(purchasing=fake_purchasing)

    first = await svc.process_item(session, item_id=5001, warehouse_id=1, auto_order=False)
    assert first.alert_created
    assert first.alert.status == AlertStatus.PENDING
    assert (first.alert.current_stock, first.alert.suggested_qty, first.alert.reorder_level) == (10, 100, 50)
    assert first.alert.notified_at is not None

    await set_stock(session, item=5001, on_hand=5)
    await session.commit()
    second = await svc.process_item(session, item_id=5001, warehouse_id=1, auto_order=False)
    assert not second.alert_created
    assert second.alert.id == first.alert.id
    assert second.alert.current_stock == 5

    rows, meta = await svc.list_alerts(session, item_id=5001)
    assert meta["total"] == 1 and len(rows) == 1
    assert fake_purchasing.calls == []


@pytest.mark.asyncio
async def test_stock_above_level_opens_nothing(session: AsyncSession, fake_purchasing):
    await _low_stock(session, 5002, on_hand=500)
    svc = build_alert_service(purchasing=fake_purchasing)
    out = await svc.process_item(session, item_id=5002, warehouse_id=1)
    assert not out.evaluation.below_reorder
    assert out.alert is None and out.purchase_order is None


@pytest.mark.asyncio
async def test_acknowledged_alert_keeps_its_snapshot(session: AsyncSession, fake_purchasing):
    await _low_stock(session, 5003)
    svc = build_alert_service(purchasing=fake_purchasing)
    alert = await _open_alert(session, svc, 5003)

    acked = await svc.acknowledge(session, alert.id)
    assert acked.status == AlertStatus.ACKNOWLEDGED
    assert acked.acknowledged_at is not None

    await set_stock(session, item=5003, on_hand=1)
    await session.commit()
    again = await svc.process_item(session, item_id=5003, warehouse_id=1, auto_order=False)
    assert again.alert.id == alert.id
    assert again.alert.current_stock == 10


@pytest.mark.asyncio
async def test_dismiss_is_terminal_and_next_event_opens_new_alert(session: AsyncSession, fake_purchasing):
    await _low_stock(session, 5004)
    svc = build_alert_service(purchasing=fake_purchasing)
    alert_id = (await _open_alert(session, svc, 5004)).id

    dismissed = await svc.dismiss(session, alert_id)
    assert dismissed.status == AlertStatus.DISMISSED
    assert dismissed.open_key is None and dismissed.resolved_at is not None

    with pytest.raises(InvalidAlertTransition):
        await svc.acknowledge(session, alert_id)
    with pytest.raises(InvalidAlertTransition):
        await svc.dismiss(session, alert_id)
    await session.commit()

    fresh = await _open_alert(session, svc, 5004)
    assert fresh.id != alert_id
    assert fresh.status == AlertStatus.PENDING
    assert (await svc.get_alert(session, alert_id)).status == AlertStatus.DISMISSED


# ---------------------------------------------------------------
# Purchase orders
# ---------------------------------------------------------------


@pytest.mark.asyncio
async def test_auto_reorder_raises_exactly_one_purchase_order(session: AsyncSession, fake_purchasing):
    await _low_stock(session, 5005)
    svc = build_alert_service(purchasing=fake_purchasing)

    out = await svc.process_item(session, item_id=5005, warehouse_id=1)
    assert out.purchase_order.status == PO_CREATED
    po_id = out.purchase_order.purchase_order_id

    alert = await svc.get_alert(session, out.alert.id)
    assert alert.status == AlertStatus.PO_CREATED
    assert alert.purchase_order_id == po_id
    assert alert.open_key is None and alert.po_claim_token is None

    call = fake_purchasing.calls[0]
    assert call["vendor_id"] == 7 and call["quantity"] == 100 and call["warehouse_id"] == 1
    assert call["idempotency_key"] == f"reorder-alert:{alert.id}"

    again = await svc.raise_purchase_order(session, alert.id)
    assert (again.status, again.purchase_order_id) == (PO_ALREADY_CREATED, po_id)
    assert len(fake_purchasing.calls) == 1


@pytest.mark.asyncio
async def test_second_caller_during_call_sees_in_progress(session: AsyncSession, async_session_maker):
    await _low_stock(session, 5006)
    seen = {}

    async def _racer(call):
        async with async_session_maker() as other:
            seen["racer"] = await svc.raise_purchase_order(other, alert.id)
            with pytest.raises(InvalidAlertTransition):
                await svc.dismiss(other, alert.id)

    purchasing = FakePurchasing(on_call=_racer)
    svc = build_alert_service(purchasing=purchasing)
    alert = await _open_alert(session, svc, 5006)

    out = await svc.raise_purchase_order(session, alert.id)
    assert out.status == PO_CREATED
    assert seen["racer"].status == PO_IN_PROGRESS
    assert len(purchasing.calls) == 1
    assert (await svc.get_alert(session, alert.id)).status == AlertStatus.PO_CREATED


@pytest.mark.asyncio
async def test_purchasing_failure_keeps_alert_open_and_retry_succeeds(session: AsyncSession):
    await _low_stock(session, 5007)
    purchasing = FakePurchasing(fail_times=1)
    svc = build_alert_service(purchasing=purchasing)
    alert = await _open_alert(session, svc, 5007)

    with pytest.raises(PurchasingUnavailable):
        await svc.raise_purchase_order(session, alert.id)

    after = await svc.get_alert(session, alert.id)
    assert after.status == AlertStatus.PENDING
    assert after.po_claim_token is None
    assert "purchasing backend down" in after.last_error

    ok = await svc.raise_purchase_order(session, alert.id)
    assert ok.status == PO_CREATED
    assert len(purchasing.calls) == 2
    assert (await svc.get_alert(session, alert.id)).last_error is None


@pytest.mark.asyncio
async def test_purchasing_timeout_is_reported_not_raised(session: AsyncSession):
    await _low_stock(session, 5008)
    svc = build_alert_service(purchasing=FakePurchasing(delay=1.0), purchasing_timeout=0.05)
    alert = await _open_alert(session, svc, 5008)

    out = await svc.raise_purchase_order(session, alert.id, raise_on_failure=False)
    assert out.status == PO_FAILED
    assert out.error.startswith("timeout")
    after = await svc.get_alert(session, alert.id)
    assert after.status == AlertStatus.PENDING and after.po_claim_token is None


@pytest.mark.asyncio
async def test_auto_reorder_failure_does_not_fail_processing(session: AsyncSession):
    await _low_stock(session, 5009)
    svc = build_alert_service(purchasing=FakePurchasing(fail_times=5))
    out = await svc.process_item(session, item_id=5009, warehouse_id=1)
    assert out.alert_created
    assert out.purchase_order.status == PO_FAILED


@pytest.mark.asyncio
async def test_manual_purchase_order_requires_vendor_and_auto_reorder(session: AsyncSession, fake_purchasing):
    await _low_stock(session, 5010, vendor=None)
    svc = build_alert_service(purchasing=fake_purchasing)
    out = await svc.process_item(session, item_id=5010, warehouse_id=1)
    assert out.alert_created and out.purchase_order is None

    with pytest.raises(ReorderPolicyMissing):
        await svc.raise_purchase_order(session, out.alert.id)
    assert fake_purchasing.calls == []


@pytest.mark.asyncio
async def test_switched_off_policy_is_not_eligible_without_raising(session: AsyncSession, fake_purchasing):
    await _low_stock(session, 5014)
    svc = build_alert_service(purchasing=fake_purchasing)
    alert = await _open_alert(session, svc, 5014)
    await ReorderSettingsService().upsert(session, item_id=5014, warehouse_id=1, auto_reorder=False)
    await session.commit()

    out = await svc.raise_purchase_order(session, alert.id, raise_on_failure=False)
    assert out.status == PO_NOT_ELIGIBLE
    assert "auto reorder off" in out.error
    assert (await svc.get_alert(session, alert.id)).status == AlertStatus.PENDING
    assert fake_purchasing.calls == []


@pytest.mark.asyncio
async def test_stale_claim_is_taken_over(session: AsyncSession, fake_purchasing):
    await _low_stock(session, 5011)
    svc = build_alert_service(purchasing=fake_purchasing)
    alert = await _open_alert(session, svc, 5011)

    # a live lease blocks
    await session.execute(
        update(ReorderAlert)
        .where(ReorderAlert.id == alert.id)
        .values(po_claim_token="other-worker", po_claimed_at=utcnow())
    )
    await session.commit()
    assert (await svc.raise_purchase_order(session, alert.id)).status == PO_IN_PROGRESS
    await session.commit()

    # a lease older than the TTL does not
    await session.execute(
        update(ReorderAlert)
        .where(ReorderAlert.id == alert.id)
        .values(po_claimed_at=utcnow() - svc.claim_ttl - timedelta(minutes=1))
    )
    await session.commit()
    assert (await svc.raise_purchase_order(session, alert.id)).status == PO_CREATED
    assert len(fake_purchasing.calls) == 1


@pytest.mark.asyncio
async def test_bulk_purchase_orders_report_per_alert(session: AsyncSession, fake_purchasing):
    await _low_stock(session, 5012)
    await _low_stock(session, 5013)
    svc = build_alert_service(purchasing=fake_purchasing)
    a_id = (await _open_alert(session, svc, 5012)).id
    b_id = (await _open_alert(session, svc, 5013)).id
    await svc.dismiss(session, b_id)

    outcomes = await svc.bulk_raise_purchase_orders(session, [a_id, a_id, 999_999, b_id])
    assert [(o.alert_id, o.status) for o in outcomes] == [
        (a_id, PO_CREATED),
        (999_999, PO_NOT_FOUND),
        (b_id, PO_NOT_ELIGIBLE),
    ]
    assert len(fake_purchasing.calls) == 1
