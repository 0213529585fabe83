# utils/checkout.py
"""Turns a cart plus checkout form into a Stripe Checkout Session.

Prices, stock and availability are re-read from the catalog here; the
unit prices stored on cart lines are never used for the charge.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from models.cart import Cart, CartItem
from models.catalog import Product, ProductVariant
from models.discount import DiscountCode
from schemas.checkout import AddressIn, CheckoutSessionRequest
from utils.pricing import (
    DiscountError, Totals, check_discount, compute_tax, compute_totals,
    discount_amount, get_shipping_rate, round_money, to_cents,
)
from utils.stripe_client import StripeClient

logger = logging.getLogger(__name__)

# Stripe caps every metadata value at this many characters
METADATA_VALUE_LIMIT = 500


class CheckoutError(Exception):
    """Checkout rejected before anything was sent to Stripe."""

    def __init__(self, message: str, errors: Optional[List[dict]] = None, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.errors = errors or []
        self.status_code = status_code


@dataclass
class PricedLine:
    cart_item: CartItem
    product: Product
    variant: ProductVariant
    quantity: int
    unit_price: float

    @property
    def line_total(self) -> float:
        return round_money(self.unit_price * self.quantity)

    @property
    def display_name(self) -> str:
        return f"{self.product.name} - {self.variant.name}"


@dataclass
class CartRevalidation:
    lines: List[PricedLine] = field(default_factory=list)
    problems: List[dict] = field(default_factory=list)
    weight_oz: float = 0.0

    @property
    def subtotal(self) -> float:
        return round_money(sum(line.unit_price * line.quantity for line in self.lines))

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)


def revalidate_cart(db: Session, cart: Cart) -> CartRevalidation:
    """Reprice every cart line from the catalog and collect availability problems."""
    result = CartRevalidation()
    for item in cart.items:
        variant = db.get(ProductVariant, item.variant_id)
        product = variant.product if variant else db.get(Product, item.product_id)

        if product is None or not product.is_active:
            result.problems.append({
                "cart_item_id": item.id,
                "product_name": item.product_name,
                "error": "This product is no longer available",
            })
            continue
        label = f"{product.name} - {variant.name}" if variant else product.name
        if variant is None or not variant.is_active:
            result.problems.append({
                "cart_item_id": item.id, "product_name": label,
                "error": "This variant is no longer available",
            })
            continue
        if product.track_inventory and variant.inventory_quantity < item.quantity:
            result.problems.append({
                "cart_item_id": item.id, "product_name": label,
                "error": f"Only {variant.inventory_quantity} in stock",
            })
            continue

        result.lines.append(PricedLine(
            cart_item=item, product=product, variant=variant,
            quantity=item.quantity, unit_price=variant.effective_price,
        ))
        result.weight_oz += variant.effective_weight_oz * item.quantity
    return result


def find_discount_code(db: Session, code: str) -> Optional[DiscountCode]:
    return db.query(DiscountCode).filter(func.lower(DiscountCode.code) == code.strip().lower()).first()


def resolve_discount(db: Session, code: Optional[str], subtotal: float) -> Tuple[Optional[DiscountCode], float]:
    if not code:
        return None, 0.0
    discount = find_discount_code(db, code)
    if discount is None:
        raise CheckoutError("Invalid discount code", [{"field": "discount_code", "message": "Invalid discount code"}])
    try:
        check_discount(discount, subtotal)
    except DiscountError as e:
        raise CheckoutError(str(e), [{"field": "discount_code", "message": str(e)}])
    return discount, discount_amount(discount, subtotal)


def _product_line(line: PricedLine, currency: str) -> dict:
    image = line.variant.image_url or line.product.featured_image_url
    return {
        "price_data": {
            "currency": currency,
            "product_data": {
                "name": line.display_name,
                "images": [image] if image else [],
                "metadata": {
                    "line_kind": "product",
                    "product_id": str(line.product.id),
                    "variant_id": str(line.variant.id),
                },
            },
            "unit_amount": to_cents(line.unit_price),
        },
        "quantity": line.quantity,
    }


def _fee_line(name: str, description: str, kind: str, amount: float, currency: str) -> dict:
    return {
        "price_data": {
            "currency": currency,
            "product_data": {"name": name, "description": description, "metadata": {"line_kind": kind}},
            "unit_amount": to_cents(amount),
        },
        "quantity": 1,
    }


def _address_metadata(field_name: str, address: AddressIn) -> str:
    value = json.dumps(address.model_dump(), ensure_ascii=False)
    if len(value) > METADATA_VALUE_LIMIT:
        raise CheckoutError("Address is too long", [{"field": field_name, "message": "Address is too long"}])
    return value


def build_checkout_session(
    db: Session,
    client: StripeClient,
    cart: Cart,
    payload: CheckoutSessionRequest,
    user_id: Optional[int] = None,
) -> Tuple[Dict, Totals]:
    """Price the cart server-side and open a Stripe Checkout Session.

    Returns the Stripe session (as a dict) and the totals it was built from.
    Raises CheckoutError for anything the shopper must fix, and lets
    PaymentProviderError propagate when Stripe fails.
    """
    if not cart.items:
        raise CheckoutError("Cart is empty")

    shipping_address = _address_metadata("shipping_address", payload.shipping_address)
    billing_address = _address_metadata("billing_address", payload.billing_address)

    checked = revalidate_cart(db, cart)
    if checked.problems:
        raise CheckoutError(
            "Some items in your cart are unavailable",
            [{"field": f"items.{p['cart_item_id']}", "message": f"{p['product_name']}: {p['error']}"}
             for p in checked.problems],
        )

    subtotal = checked.subtotal
    rate = get_shipping_rate(payload.shipping_rate_id, subtotal, checked.weight_oz)
    if rate is None:
        raise CheckoutError(
            "Unknown shipping rate",
            [{"field": "shipping_rate_id", "message": f"Unknown shipping rate '{payload.shipping_rate_id}'"}],
        )

    discount, discount_value = resolve_discount(db, payload.discount_code, subtotal)
    totals = compute_totals(subtotal, shipping=rate.price, tax=compute_tax(subtotal), discount=discount_value)

    currency = client.currency
    line_items = [_product_line(line, currency) for line in checked.lines]
    if totals.shipping_amount > 0:
        line_items.append(_fee_line(rate.name, "Shipping", "shipping", totals.shipping_amount, currency))
    if totals.tax_amount > 0:
        line_items.append(_fee_line("Sales tax", "Tax", "tax", totals.tax_amount, currency))

    # Fixed coupon for exactly our computed amount, so Stripe's total matches ours
    coupon_id = None
    if discount is not None and totals.discount_amount > 0:
        coupon = client.create_coupon(name=discount.code, amount_off=to_cents(totals.discount_amount))
        coupon_id = coupon["id"]

    metadata = {
        "cart_id": str(cart.id),
        "user_id": str(user_id or ""),
        "cart_session_id": cart.session_id or "",
        "discount_code_id": str(discount.id) if discount else "",
        "shipping_address": shipping_address,
        "billing_address": billing_address,
        "shipping_rate_id": rate.id,
        "shipping_rate_name": rate.name,
        "subtotal": f"{totals.subtotal:.2f}",
        "shipping_amount": f"{totals.shipping_amount:.2f}",
        "tax_amount": f"{totals.tax_amount:.2f}",
        "discount_amount": f"{totals.discount_amount:.2f}",
        "customer_notes": (payload.customer_notes or "")[:450],
    }

    session = client.create_checkout_session(
        line_items=line_items,
        customer_email=payload.email,
        metadata=metadata,
        coupon_id=coupon_id,
    )
    logger.info(
        "Created checkout session %s for cart %s (total %.2f)", session.get("id"), cart.id, totals.total
    )
    return session, totals
