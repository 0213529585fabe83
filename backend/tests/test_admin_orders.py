import pytest

from models.log import Log
from models.order import Order
from schemas.order import OrderUpdate
from utils.order_workflow import InvalidTransition, VersionConflict, can_transition, update_order

UNCHANGING = {"status", "tracking_number", "version", "updated_at"}


def _snapshot(body):
    return {k: v for k, v in body.items() if k not in UNCHANGING}


def test_ship_with_tracking_changes_nothing_else(client, db, order, admin_headers):
    before = client.get(f"/admin/orders/{order.id}", headers=admin_headers).json()

    r = client.patch(f"/admin/orders/{order.id}", headers=admin_headers,
                     json={"status": "shipped", "tracking_number": "1Z999"})
    assert r.status_code == 200, r.text

    after = client.get(f"/admin/orders/{order.id}", headers=admin_headers).json()
    assert after["status"] == "shipped"
    assert after["tracking_number"] == "1Z999"
    assert _snapshot(after) == _snapshot(before)
    assert after["version"] == before["version"] + 1

    log = db.query(Log).filter(Log.action == "ORDER_UPDATE").one()
    assert log.meta["changes"]["status"] == ["confirmed", "shipped"]


def test_post_is_accepted_like_patch(client, order, admin_headers):
    r = client.post(f"/admin/orders/{order.id}", headers=admin_headers, json={"notes": "Called customer"})
    assert r.status_code == 200
    assert r.json()["notes"] == "Called customer"
    assert r.json()["status"] == "confirmed"


def test_stale_version_is_409(client, order, admin_headers):
    ok = client.patch(f"/admin/orders/{order.id}", headers=admin_headers,
                      json={"status": "processing", "version": 1})
    assert ok.status_code == 200
    assert ok.json()["version"] == 2

    stale = client.patch(f"/admin/orders/{order.id}", headers=admin_headers,
                         json={"notes": "second admin", "version": 1})
    assert stale.status_code == 409

    current = client.get(f"/admin/orders/{order.id}", headers=admin_headers).json()
    assert current["notes"] is None


def test_without_version_last_write_wins(client, order, admin_headers):
    client.patch(f"/admin/orders/{order.id}", headers=admin_headers, json={"notes": "first"})
    r = client.patch(f"/admin/orders/{order.id}", headers=admin_headers, json={"notes": "second"})
    assert r.json()["notes"] == "second"
    assert r.json()["version"] == 3


def test_terminal_status_cannot_move(client, order, admin_headers):
    client.patch(f"/admin/orders/{order.id}", headers=admin_headers, json={"status": "cancelled"})
    r = client.patch(f"/admin/orders/{order.id}", headers=admin_headers, json={"status": "shipped"})
    assert r.status_code == 400
    assert "cancelled" in r.json()["detail"]


def test_unknown_status_is_validation_error(client, order, admin_headers):
    r = client.patch(f"/admin/orders/{order.id}", headers=admin_headers, json={"status": "lost"})
    assert r.status_code == 400
    assert r.json()["errors"][0]["field"] == "status"


def test_missing_order_404(client, admin_headers):
    assert client.patch("/admin/orders/999", headers=admin_headers, json={"notes": "x"}).status_code == 404


def test_customers_cannot_edit(client, order, customer_headers):
    r = client.patch(f"/admin/orders/{order.id}", headers=customer_headers, json={"status": "shipped"})
    assert r.status_code == 403


def test_admin_list_filters(client, order, admin_headers):
    r = client.get("/admin/orders", headers=admin_headers, params={"status": "confirmed", "q": "THK-TEST"})
    body = r.json()
    assert body["total"] == 1
    assert body["items"][0]["stripe_checkout_session_id"] == "cs_test_fixture"

    r = client.get("/admin/orders", headers=admin_headers, params={"status": "shipped"})
    assert r.json()["total"] == 0


def test_customer_sees_only_own_orders(client, order, customer_headers, other_customer_headers):
    mine = client.get("/orders", headers=customer_headers).json()
    assert [o["order_number"] for o in mine["items"]] == ["THK-TEST-0001"]
    assert "notes" not in mine["items"][0]

    assert client.get(f"/orders/{order.id}", headers=other_customer_headers).status_code == 404


def test_same_status_is_a_noop(db, order):
    changes = update_order(db, order, OrderUpdate(status="confirmed"))
    assert changes == {}
    assert order.version == 1


def test_update_order_rejects_stale_version(db, order):
    with pytest.raises(VersionConflict):
        update_order(db, order, OrderUpdate(notes="x", version=7))


@pytest.mark.parametrize("current, new, allowed", [
    ("pending", "confirmed", True),
    ("confirmed", "delivered", True),
    ("processing", "cancelled", True),
    ("shipped", "refunded", True),
    ("shipped", "processing", False),
    ("delivered", "cancelled", False),
    ("refunded", "confirmed", False),
    ("cancelled", "refunded", False),
])
def test_transition_table(current, new, allowed):
    assert can_transition(current, new) is allowed


def test_invalid_transition_raises(db, order):
    order.status = "delivered"
    db.commit()
    with pytest.raises(InvalidTransition):
        update_order(db, order, OrderUpdate(status="processing"))


def test_audit_log_browser(client, order, admin_headers, customer_headers):
    client.patch(f"/admin/orders/{order.id}", headers=admin_headers, json={"notes": "Packed"})

    body = client.get("/admin/logs", headers=admin_headers, params={"action": "ORDER_UPDATE"}).json()
    assert body["total"] == 1
    assert body["items"][0]["meta"]["order_id"] == order.id

    assert client.get("/admin/logs", headers=admin_headers, params={"status": "fail"}).json()["total"] == 0
    assert client.get("/admin/logs", headers=customer_headers).status_code == 403


def test_concurrent_edits_from_same_version_conflict(db, other_db, order):
    theirs = other_db.get(Order, order.id)
    assert order.version == theirs.version == 1

    update_order(other_db, theirs, OrderUpdate(notes="B", version=1))
    with pytest.raises(VersionConflict):
        update_order(db, order, OrderUpdate(notes="A", version=1))

    db.refresh(order)
    assert order.notes == "B"
    assert order.version == 2


def test_concurrent_unversioned_edit_reapplies_on_latest(db, other_db, order):
    theirs = other_db.get(Order, order.id)

    update_order(other_db, theirs, OrderUpdate(tracking_number="1Z999"))
    changes = update_order(db, order, OrderUpdate(notes="A"))

    assert changes == {"notes": (None, "A")}
    db.refresh(order)
    assert order.notes == "A"
    assert order.tracking_number == "1Z999"
    assert order.version == 3


def test_concurrent_http_edit_is_409(client, db, other_db, order, admin_headers):
    # Admin page loaded at version 1; someone else saves first
    theirs = other_db.get(Order, order.id)
    update_order(other_db, theirs, OrderUpdate(status="processing", version=1))

    r = client.patch(f"/admin/orders/{order.id}", headers=admin_headers,
                     json={"status": "shipped", "version": 1})

    assert r.status_code == 409
    db.refresh(order)
    assert order.status == "processing"
