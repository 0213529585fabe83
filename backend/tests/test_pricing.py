from datetime import datetime, timedelta, timezone

import pytest

from config import settings
from models.discount import DiscountCode, DiscountType
from utils.pricing import (
    DiscountError, check_discount, compute_tax, compute_totals, discount_amount,
    get_shipping_rate, quote_shipping_rates, to_cents,
)


def test_static_rate_table_below_free_threshold():
    rates = {r.id: r.price for r in quote_shipping_rates(subtotal=49.98, weight_oz=16)}
    assert rates == {"standard": 5.99, "express": 14.99, "overnight": 29.99}


def test_free_rate_offered_from_threshold():
    rates = quote_shipping_rates(subtotal=settings.FREE_SHIPPING_THRESHOLD, weight_oz=0)
    assert rates[0].id == "free"
    assert rates[0].price == 0.0


def test_weight_surcharge_per_started_32_oz_over_a_pound():
    # 50 oz is 34 oz over the first pound: two started 32 oz steps
    assert get_shipping_rate("standard", 10.0, 50).price == 9.99
    assert get_shipping_rate("express", 10.0, 48).price == 16.99


def test_unknown_rate_is_none():
    assert get_shipping_rate("pigeon", 10.0) is None
    assert get_shipping_rate("free", 10.0) is None


def test_tax_is_flat(monkeypatch):
    monkeypatch.setattr(settings, "TAX_RATE_PERCENT", 8.0)
    monkeypatch.setattr(settings, "TAX_FLAT_AMOUNT", 2.0)
    assert compute_tax(100.0) == 10.0


def test_totals_identity():
    totals = compute_totals(49.98, shipping=5.99, tax=2.0, discount=5.0)
    assert totals.total == 52.97
    assert totals.total == round(totals.subtotal - totals.discount_amount + totals.shipping_amount
                                 + totals.tax_amount, 2)


def test_to_cents_rounds_half_cents():
    assert to_cents(24.99) == 2499
    assert to_cents(57.97) == 5797


def _code(**kwargs):
    defaults = dict(code="ELK", discount_type=DiscountType.PERCENTAGE, discount_value=10,
                    usage_count=0, is_active=True)
    defaults.update(kwargs)
    return DiscountCode(**defaults)


def test_percentage_discount_capped_by_maximum():
    assert discount_amount(_code(discount_value=50, maximum_discount_amount=20), 100.0) == 20.0
    assert discount_amount(_code(discount_value=10), 49.98) == 5.0


def test_fixed_discount_never_exceeds_subtotal():
    code = _code(discount_type=DiscountType.FIXED_AMOUNT, discount_value=30)
    assert discount_amount(code, 12.5) == 12.5


@pytest.mark.parametrize("kwargs, message", [
    ({"is_active": False}, "no longer active"),
    ({"expires_at": datetime.now(timezone.utc) - timedelta(days=1)}, "expired"),
    ({"starts_at": datetime.now(timezone.utc) + timedelta(days=1)}, "not yet valid"),
    ({"usage_limit": 3, "usage_count": 3}, "usage limit"),
    ({"minimum_order_amount": 100.0}, "Minimum order amount"),
])
def test_discount_rejections(kwargs, message):
    with pytest.raises(DiscountError, match=message):
        check_discount(_code(**kwargs), 50.0)


def test_naive_expiry_is_treated_as_utc():
    code = _code(expires_at=datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(hours=1))
    check_discount(code, 50.0)
