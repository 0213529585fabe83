import json

import pytest

from config import settings
from models.discount import DiscountCode, DiscountType
from models.order import Order


def _add_to_cart(client, variant, quantity=2, headers=None):
    r = client.post(
        "/cart/items",
        json={"product_id": variant.product_id, "variant_id": variant.id, "quantity": quantity},
        headers=headers or {},
    )
    assert r.status_code == 200, r.text
    return {"X-Cart-Session": r.headers["X-Cart-Session"]} if "X-Cart-Session" in r.headers else {}


@pytest.fixture
def flat_two_dollar_tax(monkeypatch):
    monkeypatch.setattr(settings, "TAX_RATE_PERCENT", 0.0)
    monkeypatch.setattr(settings, "TAX_FLAT_AMOUNT", 2.0)


def test_session_totals_for_two_tees_standard_shipping(client, payment, variant, checkout_payload,
                                                       flat_two_dollar_tax):
    headers = _add_to_cart(client, variant, 2)

    r = client.post("/checkout/create-session", json=checkout_payload, headers=headers)

    assert r.status_code == 200, r.text
    body = r.json()
    assert body["session_id"] == "cs_test_1"
    assert body["url"].endswith("cs_test_1")
    assert body["totals"] == {
        "subtotal": 49.98,
        "discount_amount": 0.0,
        "shipping_amount": 5.99,
        "tax_amount": 2.0,
        "total": 57.97,
    }

    sent = payment.created[0]
    amounts = [(li["price_data"]["product_data"]["metadata"]["line_kind"], li["price_data"]["unit_amount"],
                li["quantity"]) for li in sent["line_items"]]
    assert amounts == [("product", 2499, 2), ("shipping", 599, 1), ("tax", 200, 1)]
    assert sent["line_items"][0]["price_data"]["product_data"]["metadata"]["variant_id"] == str(variant.id)
    assert sent["customer_email"] == "hunter@example.com"
    assert sent["metadata"]["subtotal"] == "49.98"


def test_addresses_travel_in_metadata(client, payment, variant, checkout_payload):
    headers = _add_to_cart(client, variant, 1)
    client.post("/checkout/create-session", json=checkout_payload, headers=headers)

    meta = payment.created[0]["metadata"]
    shipping = json.loads(meta["shipping_address"])
    assert shipping["state"] == "MT"
    assert json.loads(meta["billing_address"]) == shipping


def test_prices_come_from_catalog_not_cart(client, db, payment, variant, checkout_payload):
    headers = _add_to_cart(client, variant, 2)
    variant.price = 30.00
    db.commit()

    r = client.post("/checkout/create-session", json=checkout_payload, headers=headers)

    assert r.json()["totals"]["subtotal"] == 60.0
    assert payment.created[0]["line_items"][0]["price_data"]["unit_amount"] == 3000


def test_empty_cart_rejected_before_provider(client, payment, checkout_payload):
    r = client.post("/checkout/create-session", json=checkout_payload)
    assert r.status_code == 400
    assert r.json()["detail"] == "Cart is empty"
    assert payment.created == []


def test_address_errors_are_field_level(client, payment, variant, checkout_payload):
    headers = _add_to_cart(client, variant, 1)
    checkout_payload["shipping_address"].update({"state": "Montana", "postal_code": "5971", "city": "  "})

    r = client.post("/checkout/create-session", json=checkout_payload, headers=headers)

    assert r.status_code == 400
    fields = {e["field"] for e in r.json()["errors"]}
    assert {"shipping_address.state", "shipping_address.postal_code", "shipping_address.city"} <= fields
    assert payment.created == []


def test_zip_plus_four_accepted(client, variant, checkout_payload):
    headers = _add_to_cart(client, variant, 1)
    checkout_payload["shipping_address"]["postal_code"] = "59715-1234"
    r = client.post("/checkout/create-session", json=checkout_payload, headers=headers)
    assert r.status_code == 200


def test_unknown_shipping_rate(client, payment, variant, checkout_payload):
    headers = _add_to_cart(client, variant, 1)
    checkout_payload["shipping_rate_id"] = "free"  # below threshold
    r = client.post("/checkout/create-session", json=checkout_payload, headers=headers)
    assert r.status_code == 400
    assert r.json()["errors"][0]["field"] == "shipping_rate_id"
    assert payment.created == []


def test_out_of_stock_line_blocks_checkout(client, db, payment, variant, checkout_payload):
    headers = _add_to_cart(client, variant, 3)
    variant.inventory_quantity = 1
    db.commit()

    r = client.post("/checkout/create-session", json=checkout_payload, headers=headers)

    assert r.status_code == 400
    assert "Only 1 in stock" in r.json()["errors"][0]["message"]
    assert payment.created == []


def test_provider_failure_is_502(client, payment, variant, checkout_payload):
    headers = _add_to_cart(client, variant, 1)
    payment.fail_create = True

    r = client.post("/checkout/create-session", json=checkout_payload, headers=headers)

    assert r.status_code == 502
    assert r.json()["detail"] == "Failed to create checkout session"


def test_discount_becomes_fixed_coupon(client, db, payment, variant, checkout_payload):
    db.add(DiscountCode(code="ELK5", discount_type=DiscountType.FIXED_AMOUNT, discount_value=5))
    db.commit()
    headers = _add_to_cart(client, variant, 2)
    checkout_payload["discount_code"] = "elk5"

    r = client.post("/checkout/create-session", json=checkout_payload, headers=headers)

    totals = r.json()["totals"]
    assert totals["discount_amount"] == 5.0
    assert totals["total"] == round(49.98 - 5.0 + 5.99, 2)
    assert payment.coupons[0]["amount_off"] == 500
    assert payment.created[0]["coupon_id"] == payment.coupons[0]["id"]


def test_shipping_rates_quote(client, variant):
    headers = _add_to_cart(client, variant, 4)  # 99.96, 32 oz
    r = client.post("/checkout/shipping-rates", headers=headers, json={
        "street_address1": "12 Elk Ridge Rd", "city": "Bozeman", "state": "MT", "postal_code": "59715",
    })
    body = r.json()
    assert body["qualifies_for_free_shipping"] is True
    assert body["remaining_for_free_shipping"] == 0.0
    assert [rate["id"] for rate in body["rates"]] == ["free", "standard", "express", "overnight"]
    assert body["rates"][1]["price"] == 7.99


def test_validate_reports_problems(client, db, variant, second_variant):
    headers = _add_to_cart(client, variant, 1)
    _add_to_cart(client, second_variant, 1, headers=headers)
    second_variant.product.is_active = False
    db.commit()

    body = client.post("/checkout/validate", headers=headers).json()

    assert body["valid"] is False
    assert [line["variant_id"] for line in body["items"]] == [variant.id]
    assert body["errors"][0]["error"] == "This product is no longer available"


def test_success_page_materializes_paid_session(client, db, payment, variant, checkout_payload):
    headers = _add_to_cart(client, variant, 2)
    session_id = client.post("/checkout/create-session", json=checkout_payload, headers=headers).json()["session_id"]

    assert client.get("/checkout/success", params={"session_id": session_id}).status_code == 400

    payment.pay(session_id)
    r = client.get("/checkout/success", params={"session_id": session_id})
    assert r.status_code == 200
    body = r.json()
    assert body["order_number"].startswith("THK-")
    assert body["item_count"] == 2
    assert body["status"] == "confirmed"

    # Refreshing the page does not create a second order
    again = client.get("/checkout/success", params={"session_id": session_id}).json()
    assert again["id"] == body["id"]
    assert db.query(Order).count() == 1

    # Cart was cleared
    assert client.get("/cart", headers=headers).json()["items"] == []


def test_success_page_unknown_session(client):
    assert client.get("/checkout/success", params={"session_id": "cs_missing"}).status_code == 404


def test_overlong_address_field_is_field_error(client, payment, variant, checkout_payload):
    headers = _add_to_cart(client, variant, 1)
    checkout_payload["shipping_address"]["street_address1"] = "1" * 81

    r = client.post("/checkout/create-session", json=checkout_payload, headers=headers)

    assert r.status_code == 400
    assert r.json()["errors"][0]["field"] == "shipping_address.street_address1"
    assert payment.created == []


def test_longest_valid_address_fits_stripe_metadata(client, payment, variant, checkout_payload):
    headers = _add_to_cart(client, variant, 1)
    checkout_payload["shipping_address"].update({
        "first_name": "F" * 40, "last_name": "L" * 40,
        "street_address1": "é" * 80, "street_address2": "S" * 80,
        "city": "C" * 50, "postal_code": "59715-1234", "phone": "4" * 20,
    })

    r = client.post("/checkout/create-session", json=checkout_payload, headers=headers)

    assert r.status_code == 200, r.text
    meta = payment.created[0]["metadata"]
    assert all(len(value) <= 500 for value in meta.values())
    assert json.loads(meta["shipping_address"])["street_address1"] == "é" * 80


def test_address_that_escapes_past_metadata_limit(client, payment, variant, checkout_payload):
    headers = _add_to_cart(client, variant, 1)
    checkout_payload["shipping_address"].update({
        "street_address1": '"' * 80, "street_address2": "\\" * 80, "city": '"' * 50,
    })

    r = client.post("/checkout/create-session", json=checkout_payload, headers=headers)

    assert r.status_code == 400
    assert r.json()["errors"][0]["field"] == "shipping_address"
    assert payment.created == []
