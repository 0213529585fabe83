# utils/pricing.py
"""Money math shared by the cart, checkout and order materialization.

Shipping is a static rate table (no carrier integration) and tax is a
flat rate from settings. Everything here is pure so it can be checked
without a database or Stripe.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from config import settings
from models.discount import DiscountCode, DiscountType


def round_money(amount: float) -> float:
    return round(amount, 2)


def to_cents(amount: float) -> int:
    return int(round(amount * 100))


def from_cents(cents: Optional[int]) -> float:
    return round((cents or 0) / 100.0, 2)


@dataclass(frozen=True)
class ShippingRate:
    id: str
    name: str
    description: str
    price: float
    estimated_days: str


SHIPPING_RATES = (
    ShippingRate("standard", "Standard Shipping", "5-7 business days", 5.99, "5-7"),
    ShippingRate("express", "Express Shipping", "2-3 business days", 14.99, "2-3"),
    ShippingRate("overnight", "Overnight Shipping", "1 business day", 29.99, "1"),
)
FREE_SHIPPING_RATE = ShippingRate("free", "Free Standard Shipping", "5-7 business days", 0.0, "5-7")

# $2 for every started 32 oz above the first pound
BASE_WEIGHT_OZ = 16
WEIGHT_STEP_OZ = 32
WEIGHT_STEP_PRICE = 2.0


def _weight_surcharge(weight_oz: float) -> float:
    if weight_oz <= BASE_WEIGHT_OZ:
        return 0.0
    return math.ceil((weight_oz - BASE_WEIGHT_OZ) / WEIGHT_STEP_OZ) * WEIGHT_STEP_PRICE


def quote_shipping_rates(subtotal: float, weight_oz: float = 0.0) -> List[ShippingRate]:
    """All rates the shopper may pick for a cart of this size and weight."""
    surcharge = _weight_surcharge(weight_oz)
    rates = [
        ShippingRate(r.id, r.name, r.description, round_money(r.price + surcharge), r.estimated_days)
        for r in SHIPPING_RATES
    ]
    if subtotal >= settings.FREE_SHIPPING_THRESHOLD:
        rates.insert(0, FREE_SHIPPING_RATE)
    return rates


def get_shipping_rate(rate_id: str, subtotal: float, weight_oz: float = 0.0) -> Optional[ShippingRate]:
    for rate in quote_shipping_rates(subtotal, weight_oz):
        if rate.id == rate_id:
            return rate
    return None


def compute_tax(subtotal: float) -> float:
    return round_money(subtotal * settings.TAX_RATE_PERCENT / 100.0 + settings.TAX_FLAT_AMOUNT)


class DiscountError(ValueError):
    """Raised when a discount code cannot be applied to a cart."""


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def check_discount(code: DiscountCode, subtotal: float, now: Optional[datetime] = None) -> None:
    now = now or datetime.now(timezone.utc)
    if not code.is_active:
        raise DiscountError("This discount code is no longer active")
    starts_at, expires_at = _aware(code.starts_at), _aware(code.expires_at)
    if starts_at and starts_at > now:
        raise DiscountError("This discount code is not yet valid")
    if expires_at and expires_at < now:
        raise DiscountError("This discount code has expired")
    if code.usage_limit is not None and code.usage_count >= code.usage_limit:
        raise DiscountError("This discount code has reached its usage limit")
    if code.minimum_order_amount and subtotal < code.minimum_order_amount:
        raise DiscountError(f"Minimum order amount of ${code.minimum_order_amount:.2f} required")


def discount_amount(code: Optional[DiscountCode], subtotal: float) -> float:
    """Amount taken off the subtotal, capped by the code's maximum and by the subtotal."""
    if code is None:
        return 0.0
    if code.discount_type == DiscountType.PERCENTAGE:
        amount = subtotal * code.discount_value / 100.0
    else:
        amount = code.discount_value
    if code.maximum_discount_amount is not None and amount > code.maximum_discount_amount:
        amount = code.maximum_discount_amount
    return round_money(min(amount, subtotal))


@dataclass(frozen=True)
class Totals:
    subtotal: float
    discount_amount: float
    shipping_amount: float
    tax_amount: float
    total: float

    def as_dict(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "discount_amount": self.discount_amount,
            "shipping_amount": self.shipping_amount,
            "tax_amount": self.tax_amount,
            "total": self.total,
        }


def compute_totals(subtotal: float, shipping: float = 0.0, tax: float = 0.0, discount: float = 0.0) -> Totals:
    subtotal, shipping, tax, discount = (round_money(v) for v in (subtotal, shipping, tax, discount))
    return Totals(
        subtotal=subtotal,
        discount_amount=discount,
        shipping_amount=shipping,
        tax_amount=tax,
        total=round_money(subtotal - discount + shipping + tax),
    )
