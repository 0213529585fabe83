# backend/routes/checkout.py
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from config import settings
from database import get_db
from models.cart import Cart
from models.users import User
from routes.cart import current_cart
from schemas.checkout import (
    CartValidationOut, CheckoutSessionOut, CheckoutSessionRequest, CheckoutTotals,
    LineProblem, ShippingQuoteOut, ShippingQuoteRequest, ShippingRateOut, ValidatedLine,
)
from schemas.order import OrderConfirmation
from utils.audit import client_ip, write_log
from utils.checkout import build_checkout_session, revalidate_cart
from utils.fulfillment import PaymentIncomplete, SessionNotFound, materialize_order
from utils.pricing import quote_shipping_rates, round_money
from utils.stripe_client import PaymentProviderError, StripeClient, get_payment_client
from utils.tokenJWT import get_optional_user

router = APIRouter(prefix="/checkout", tags=["Checkout"])
logger = logging.getLogger(__name__)


# Price the cart server-side and open a Stripe Checkout Session.
# CheckoutError (empty cart, stock, bad code) is answered with 400 by the app handler.
@router.post("/create-session", response_model=CheckoutSessionOut)
def create_checkout_session(
    payload: CheckoutSessionRequest,
    request: Request,
    cart: Cart = Depends(current_cart),
    db: Session = Depends(get_db),
    client: StripeClient = Depends(get_payment_client),
    current_user: Optional[User] = Depends(get_optional_user),
):
    user_id = current_user.id if current_user else None
    try:
        session, totals = build_checkout_session(db, client, cart, payload, user_id=user_id)
    except PaymentProviderError as e:
        logger.error("Checkout session creation failed for cart %s: %s", cart.id, e)
        write_log(db, user_id=user_id, action="CHECKOUT_SESSION", resource="checkout", status="FAIL",
                  ip=client_ip(request), meta={"cart_id": cart.id, "error": str(e)})
        raise HTTPException(status_code=502, detail="Failed to create checkout session")

    write_log(db, user_id=user_id, action="CHECKOUT_SESSION", resource="checkout", status="SUCCESS",
              ip=client_ip(request), meta={"cart_id": cart.id, "session_id": session.get("id"), "total": totals.total})

    return CheckoutSessionOut(
        session_id=session["id"],
        url=session.get("url"),
        totals=CheckoutTotals(**totals.as_dict()),
    )


@router.post("/shipping-rates", response_model=ShippingQuoteOut)
def shipping_rates(
    payload: ShippingQuoteRequest,
    cart: Cart = Depends(current_cart),
    db: Session = Depends(get_db),
):
    checked = revalidate_cart(db, cart)
    subtotal = checked.subtotal
    rates = quote_shipping_rates(subtotal, checked.weight_oz)
    threshold = settings.FREE_SHIPPING_THRESHOLD
    logger.debug("Quoted %d shipping rates to %s %s", len(rates), payload.state, payload.postal_code)

    return ShippingQuoteOut(
        rates=[ShippingRateOut(id=r.id, name=r.name, description=r.description,
                               price=r.price, estimated_days=r.estimated_days) for r in rates],
        cart_weight_oz=round(checked.weight_oz, 2),
        free_shipping_threshold=threshold,
        qualifies_for_free_shipping=subtotal >= threshold,
        remaining_for_free_shipping=round_money(max(0.0, threshold - subtotal)),
    )


# Dry run of the checkout revalidation, for the cart page
@router.post("/validate", response_model=CartValidationOut)
def validate_cart(cart: Cart = Depends(current_cart), db: Session = Depends(get_db)):
    checked = revalidate_cart(db, cart)
    return CartValidationOut(
        valid=bool(cart.items) and not checked.problems,
        items=[
            ValidatedLine(
                cart_item_id=line.cart_item.id,
                product_id=line.product.id,
                variant_id=line.variant.id,
                product_name=line.product.name,
                variant_name=line.variant.name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                line_total=line.line_total,
            )
            for line in checked.lines
        ],
        errors=[LineProblem(**p) for p in checked.problems],
        subtotal=checked.subtotal,
        item_count=checked.item_count,
    )


# Landing page after Stripe redirects back. Creates the order if the
# webhook has not done so yet.
@router.get("/success", response_model=OrderConfirmation)
def checkout_success(
    request: Request,
    session_id: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    client: StripeClient = Depends(get_payment_client),
):
    try:
        result = materialize_order(db, client, session_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Checkout session not found")
    except PaymentIncomplete as e:
        raise HTTPException(status_code=400, detail=f"Payment not completed (status: {e.payment_status})")
    except PaymentProviderError as e:
        logger.error("Could not confirm checkout session %s: %s", session_id, e)
        raise HTTPException(status_code=502, detail="Failed to confirm checkout session")

    order = result.order
    if result.created:
        write_log(db, user_id=order.user_id, action="ORDER_CREATE", resource="orders", status="SUCCESS",
                  ip=client_ip(request),
                  meta={"order_id": order.id, "order_number": order.order_number, "source": "success_page"})

    return OrderConfirmation(
        id=order.id,
        order_number=order.order_number,
        status=order.status,
        payment_status=order.payment_status,
        total=order.total,
        email=order.email,
        item_count=sum(it.quantity for it in order.items),
        created_at=order.created_at,
    )
