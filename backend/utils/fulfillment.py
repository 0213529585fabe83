# utils/fulfillment.py
"""Creates local orders from paid Stripe checkout sessions.

materialize_order is safe to call any number of times for the same
session: the first call writes the Order, its items, the inventory
decrements and the cart clean-up in one transaction, and every later
call returns that same Order untouched.
"""
import json
import logging
import secrets
import string
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.cart import CartItem
from models.catalog import ProductVariant
from models.discount import DiscountCode
from models.order import FulfillmentStatus, Order, OrderItem, OrderStatus, PaymentStatus
from utils.pricing import compute_totals, from_cents, round_money
from utils.stripe_client import StripeClient

logger = logging.getLogger(__name__)

ORDER_NUMBER_PREFIX = "THK"
_BASE36 = string.digits + string.ascii_uppercase


class SessionNotFound(LookupError):
    pass


class PaymentIncomplete(Exception):
    def __init__(self, payment_status: Optional[str]):
        super().__init__(f"Payment not completed (status={payment_status})")
        self.payment_status = payment_status


@dataclass
class MaterializeResult:
    order: Order
    created: bool


@dataclass
class PaidLine:
    variant_id: Optional[int]
    product_id: Optional[int]
    description: str
    quantity: int
    unit_price: float


def _base36(number: int) -> str:
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)) or "0"


def generate_order_number(db: Session) -> str:
    while True:
        stamp = _base36(int(time.time() * 1000))
        suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
        number = f"{ORDER_NUMBER_PREFIX}-{stamp}-{suffix}"
        if not db.query(Order.id).filter(Order.order_number == number).first():
            return number


def _int_or_none(value: Any) -> Optional[int]:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def _float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _json_dict(value: Optional[str]) -> Optional[dict]:
    if not value:
        return None
    try:
        return json.loads(value)
    except ValueError:
        logger.warning("Unparseable address in session metadata: %r", value[:100])
        return None


def _id_of(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("id")
    return value


def paid_product_lines(session: Dict[str, Any]) -> List[PaidLine]:
    """Product lines of a session; shipping and tax lines are skipped."""
    listing = session.get("line_items") or {}
    if listing.get("has_more"):
        raise ValueError(f"Checkout session {session.get('id')} line items are incomplete")
    lines = []
    for li in listing.get("data", []):
        price = li.get("price") or {}
        product = price.get("product")
        meta = product.get("metadata", {}) if isinstance(product, dict) else {}
        if meta.get("line_kind", "product") != "product":
            continue
        quantity = int(li.get("quantity") or 0)
        if quantity < 1:
            continue
        if price.get("unit_amount") is not None:
            unit_price = from_cents(price["unit_amount"])
        else:
            unit_price = round_money(from_cents(li.get("amount_subtotal")) / quantity)
        lines.append(PaidLine(
            variant_id=_int_or_none(meta.get("variant_id")),
            product_id=_int_or_none(meta.get("product_id")),
            description=li.get("description") or (product.get("name") if isinstance(product, dict) else "") or "Item",
            quantity=quantity,
            unit_price=unit_price,
        ))
    return lines


def find_order_for_session(db: Session, session_id: str) -> Optional[Order]:
    return db.query(Order).filter(Order.stripe_checkout_session_id == session_id).first()


def materialize_order(db: Session, client: StripeClient, session_id: str) -> MaterializeResult:
    existing = find_order_for_session(db, session_id)
    if existing:
        logger.info("Order %s already exists for session %s", existing.order_number, session_id)
        return MaterializeResult(existing, False)

    session = client.retrieve_session(session_id)
    if not session:
        raise SessionNotFound(session_id)
    if session.get("payment_status") != "paid":
        raise PaymentIncomplete(session.get("payment_status"))

    metadata = session.get("metadata") or {}
    lines = paid_product_lines(session)
    if not lines:
        raise ValueError(f"Checkout session {session_id} has no product lines")

    subtotal = sum(line.unit_price * line.quantity for line in lines)
    total_details = session.get("total_details") or {}
    if total_details.get("amount_discount") is not None:
        discount = from_cents(total_details["amount_discount"])
    else:
        discount = _float(metadata.get("discount_amount"))
    totals = compute_totals(
        subtotal,
        shipping=_float(metadata.get("shipping_amount")),
        tax=_float(metadata.get("tax_amount")),
        discount=discount,
    )

    customer = session.get("customer_details") or {}
    discount_code_id = _int_or_none(metadata.get("discount_code_id"))

    try:
        order = Order(
            order_number=generate_order_number(db),
            user_id=_int_or_none(metadata.get("user_id")),
            email=customer.get("email") or session.get("customer_email") or "",
            status=OrderStatus.CONFIRMED.value,
            payment_status=PaymentStatus.PAID.value,
            fulfillment_status=FulfillmentStatus.UNFULFILLED.value,
            subtotal=totals.subtotal,
            discount_amount=totals.discount_amount,
            shipping_amount=totals.shipping_amount,
            tax_amount=totals.tax_amount,
            total=totals.total,
            currency=(session.get("currency") or "usd").upper(),
            shipping_address=_json_dict(metadata.get("shipping_address")),
            billing_address=_json_dict(metadata.get("billing_address")),
            shipping_method=metadata.get("shipping_rate_name") or "Standard Shipping",
            customer_notes=metadata.get("customer_notes") or None,
            stripe_checkout_session_id=session_id,
            stripe_payment_intent_id=_id_of(session.get("payment_intent")),
            discount_code_id=discount_code_id,
        )
        db.add(order)

        for line in lines:
            variant = None
            if line.variant_id is not None:
                variant = (
                    db.query(ProductVariant)
                    .filter(ProductVariant.id == line.variant_id)
                    .with_for_update()
                    .first()
                )
            product = variant.product if variant else None

            order.items.append(OrderItem(
                product_id=product.id if product else line.product_id,
                variant_id=variant.id if variant else None,
                product_name=product.name if product else line.description,
                variant_name=variant.name if variant else None,
                sku=(variant.sku or product.sku) if variant else None,
                quantity=line.quantity,
                unit_price=line.unit_price,
                total_price=round_money(line.unit_price * line.quantity),
            ))

            # Never below zero, even if stock moved since the session was created
            if variant is not None and product.track_inventory:
                variant.inventory_quantity = max(0, variant.inventory_quantity - line.quantity)

        if discount_code_id:
            code = db.get(DiscountCode, discount_code_id)
            if code:
                code.usage_count = (code.usage_count or 0) + 1

        cart_id = _int_or_none(metadata.get("cart_id"))
        if cart_id:
            db.query(CartItem).filter(CartItem.cart_id == cart_id).delete(synchronize_session=False)

        db.commit()
    except IntegrityError:
        # Concurrent delivery of the same session won the unique constraint
        db.rollback()
        winner = find_order_for_session(db, session_id)
        if winner:
            logger.info("Lost materialization race for session %s, using %s", session_id, winner.order_number)
            return MaterializeResult(winner, False)
        raise
    except Exception:
        db.rollback()
        logger.exception("Failed to materialize order for session %s", session_id)
        raise

    db.refresh(order)
    logger.info("Created order %s for session %s (total %.2f)", order.order_number, session_id, order.total)
    return MaterializeResult(order, True)


def _order_for_payment_intent(db: Session, payment_intent_id: Optional[str]) -> Optional[Order]:
    if not payment_intent_id:
        return None
    return db.query(Order).filter(Order.stripe_payment_intent_id == payment_intent_id).first()


def mark_payment_succeeded(db: Session, payment_intent: Dict[str, Any]) -> Optional[Order]:
    order = _order_for_payment_intent(db, payment_intent.get("id"))
    if order is None:
        return None
    order.payment_status = PaymentStatus.PAID.value
    if order.status == OrderStatus.PENDING.value:
        order.status = OrderStatus.CONFIRMED.value
    db.commit()
    return order


def mark_payment_failed(db: Session, payment_intent: Dict[str, Any]) -> Optional[Order]:
    order = _order_for_payment_intent(db, payment_intent.get("id"))
    if order is None:
        return None
    order.payment_status = PaymentStatus.FAILED.value
    db.commit()
    return order


def apply_refund(db: Session, charge: Dict[str, Any]) -> Optional[Order]:
    """Full refunds refund the order and put stock back; partial ones only flag payment."""
    order = _order_for_payment_intent(db, _id_of(charge.get("payment_intent")))
    if order is None:
        return None

    refunded = charge.get("amount_refunded") or 0
    amount = charge.get("amount") or 0
    if amount and refunded >= amount:
        if order.payment_status == PaymentStatus.REFUNDED.value:
            return order # repeated delivery, stock already restored
        order.payment_status = PaymentStatus.REFUNDED.value
        order.status = OrderStatus.REFUNDED.value
        for item in order.items:
            if item.variant_id is None:
                continue
            variant = (
                db.query(ProductVariant)
                .filter(ProductVariant.id == item.variant_id)
                .with_for_update()
                .first()
            )
            if variant is not None and variant.product.track_inventory:
                variant.inventory_quantity += item.quantity
    else:
        order.payment_status = PaymentStatus.PARTIALLY_REFUNDED.value

    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    return order
