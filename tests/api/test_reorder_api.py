# tests/api/test_reorder_api.py
from __future__ import annotations

from datetime import date, timedelta

import pytest
from httpx import AsyncClient

from tests.helpers.seed import add_issue, ensure_wh_item, set_stock

pytestmark = pytest.mark.contract

AS_OF = date(2025, 3, 1)


async def _low_item(client: AsyncClient, session, item: int, *, auto: bool = True) -> None:
    await ensure_wh_item(session, item=item, cost_price="2.50")
    await set_stock(session, item=item, on_hand=50, committed=20, incoming=10)
    for d in range(1, 31):
        await add_issue(session, item=item, day=AS_OF - timedelta(days=d), qty=10)
    await session.commit()
    r = await client.put(
        f"/reorder/settings/{item}",
        json={
            "warehouse_id": 1,
            "reorder_level": 50,
            "reorder_quantity": 100,
            "safety_stock": 20,
            "lead_time_days": 7,
            "preferred_vendor_id": 7 if auto else None,
            "auto_reorder": auto,
        },
    )
    assert r.status_code == 200, r.text


@pytest.mark.asyncio
async def test_settings_round_trip_and_validation(client: AsyncClient, session):
    await ensure_wh_item(session, item=9001)
    await session.commit()

    r = await client.get("/reorder/settings/9001", params={"warehouse_id": 1})
    assert r.status_code == 404
    assert r.json()["error_code"] == "reorder_setting_not_found"

    r = await client.put("/reorder/settings/9001", json={"warehouse_id": 1, "reorder_level": 5})
    assert r.status_code == 200
    first = r.json()
    r = await client.put("/reorder/settings/9001", json={"warehouse_id": 1, "lead_time_days": 4})
    got = r.json()
    assert got["id"] == first["id"]
    assert (got["reorder_level"], got["lead_time_days"]) == (5, 4)

    r = await client.put("/reorder/settings/9001", json={"reorder_level": -3})
    assert r.status_code == 422

    r = await client.put("/reorder/settings/404404", json={"reorder_level": 3})
    assert r.status_code == 404
    assert r.json()["error_code"] == "item_not_found"

    r = await client.put(
        "/reorder/settings",
        json={"settings": [{"item_id": 9001, "reorder_level": 7}, {"item_id": 9001, "warehouse_id": 2, "reorder_level": 9}]},
    )
    assert r.status_code == 200
    assert [(s["warehouse_id"], s["reorder_level"]) for s in r.json()] == [(None, 7), (2, 9)]


@pytest.mark.asyncio
async def test_settings_put_clears_vendor_only_when_sent(client: AsyncClient, session):
    await ensure_wh_item(session, item=9005)
    await session.commit()
    body = {"warehouse_id": 1, "reorder_level": 5, "preferred_vendor_id": 7, "auto_reorder": True}
    assert (await client.put("/reorder/settings/9005", json=body)).status_code == 200

    r = await client.put("/reorder/settings/9005", json={"warehouse_id": 1, "lead_time_days": 3})
    assert r.json()["preferred_vendor_id"] == 7

    r = await client.put("/reorder/settings/9005", json={"warehouse_id": 1, "preferred_vendor_id": None})
    assert r.status_code == 200
    got = r.json()
    assert got["preferred_vendor_id"] is None
    assert (got["reorder_level"], got["lead_time_days"], got["auto_reorder"]) == (5, 3, True)


@pytest.mark.asyncio
async def test_evaluate_low_stock_item(client: AsyncClient, session):
    await _low_item(client, session, 9002)
    r = await client.get(
        "/reorder/evaluate/9002", params={"warehouse_id": 1, "window_days": 30, "as_of": AS_OF.isoformat()}
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["current_stock"] == 40
    assert body["avg_daily_demand"] == 10.0
    assert body["below_reorder"] is True
    assert body["coverage_days"] == 4
    assert body["suggested_qty"] == 100
    assert float(body["estimated_cost"]) == 250.0
    assert body["policy"]["source"] == "setting:warehouse"


@pytest.mark.asyncio
async def test_forecast_endpoint(client: AsyncClient, session):
    await _low_item(client, session, 9003)
    r = await client.get(
        "/reorder/forecast/9003",
        params={"warehouse_id": 1, "as_of": AS_OF.isoformat(), "history_window_days": 28, "horizon_periods": 2},
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["method"] == "moving-average"
    assert [p["quantity"] for p in body["historical_points"]] == [70, 70, 70, 70]
    assert [p["forecast_qty"] for p in body["forecast_points"]] == [70.0, 70.0]

    r = await client.get("/reorder/forecast/404404")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_alert_flow_over_http(client: AsyncClient, session, fake_purchasing):
    await _low_item(client, session, 9004, auto=False)
    r = await client.post("/reorder/sweep", json={"as_of": AS_OF.isoformat()})
    assert r.status_code == 200, r.text
    assert r.json()["alerts_created"] == 1

    r = await client.get("/reorder/alerts", params={"item_id": 9004, "status": "PENDING"})
    alerts = r.json()["data"]
    assert len(alerts) == 1
    alert_id = alerts[0]["id"]
    assert alerts[0]["suggested_qty"] == 100

    # no vendor configured
    r = await client.post(f"/reorder/alerts/{alert_id}/purchase-order")
    assert r.status_code == 409
    assert r.json()["error_code"] == "reorder_policy_missing"

    r = await client.post(f"/reorder/alerts/{alert_id}/acknowledge")
    assert r.status_code == 200 and r.json()["status"] == "ACKNOWLEDGED"
    r = await client.post(f"/reorder/alerts/{alert_id}/dismiss")
    assert r.status_code == 200 and r.json()["status"] == "DISMISSED"
    r = await client.post(f"/reorder/alerts/{alert_id}/acknowledge")
    assert r.status_code == 409
    assert r.json()["error_code"] == "invalid_alert_transition"

    r = await client.post("/reorder/alerts/999999/dismiss")
    assert r.status_code == 404
    assert fake_purchasing.calls == []


@pytest.mark.asyncio
async def test_purchase_order_endpoints(client: AsyncClient, session, fake_purchasing):
    await _low_item(client, session, 9005)
    r = await client.post("/reorder/sweep", json={"as_of": AS_OF.isoformat(), "auto_order": False})
    assert r.json()["purchase_orders_created"] == 0
    alert_id = (await client.get("/reorder/alerts", params={"item_id": 9005})).json()["data"][0]["id"]

    r = await client.post(f"/reorder/alerts/{alert_id}/purchase-order")
    assert r.status_code == 200
    first = r.json()
    assert first["status"] == "created"

    r = await client.post(f"/reorder/alerts/{alert_id}/purchase-order")
    assert r.json() == {**first, "status": "already_created"}

    r = await client.post("/reorder/alerts/purchase-orders", json={"alert_ids": [alert_id, 424242]})
    assert [x["status"] for x in r.json()["results"]] == ["already_created", "not_found"]
    assert len(fake_purchasing.calls) == 1


@pytest.mark.asyncio
async def test_purchasing_outage_is_503(client: AsyncClient, session, fake_purchasing):
    await _low_item(client, session, 9006)
    await client.post("/reorder/sweep", json={"as_of": AS_OF.isoformat(), "auto_order": False})
    alert_id = (await client.get("/reorder/alerts", params={"item_id": 9006})).json()["data"][0]["id"]

    fake_purchasing.fail_times = 1
    r = await client.post(f"/reorder/alerts/{alert_id}/purchase-order")
    assert r.status_code == 503
    assert r.json()["error_code"] == "purchasing_unavailable"

    r = await client.get("/reorder/alerts", params={"item_id": 9006})
    assert r.json()["data"][0]["status"] == "PENDING"


@pytest.mark.asyncio
async def test_report_and_metrics(client: AsyncClient, session):
    await _low_item(client, session, 9007)
    await client.post("/reorder/sweep", json={"as_of": AS_OF.isoformat()})

    r = await client.get("/reorder/report", params={"as_of": AS_OF.isoformat()})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["summary"]["items_below_reorder"] == 1
    assert body["summary"]["po_created_alerts"] == 1
    assert body["stock_coverage"][0]["coverage_days"] == 4

    r = await client.get("/metrics")
    assert r.status_code == 200
    assert "reorder_po_created_total" in r.text
    assert "allocation_commit_total" in r.text


@pytest.mark.asyncio
async def test_ping(client: AsyncClient):
    r = await client.get("/ping")
    assert r.status_code == 200 and r.json()["pong"] is True
