# backend/routes/webhooks.py
import logging
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from database import get_db
from utils.audit import client_ip, write_log
from utils.fulfillment import (
    PaymentIncomplete, SessionNotFound, apply_refund, mark_payment_failed,
    mark_payment_succeeded, materialize_order,
)
from utils.stripe_client import (
    PaymentProviderError, StripeClient, WebhookSignatureError, get_payment_client,
)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])
logger = logging.getLogger(__name__)


def _handle_session_completed(db: Session, client: StripeClient, session: dict, request: Request) -> dict:
    session_id = session.get("id")
    try:
        result = materialize_order(db, client, session_id)
    except SessionNotFound:
        # Answer 200 anyway, otherwise Stripe keeps redelivering
        logger.error("Webhook for unknown checkout session %s", session_id)
        return {"received": True, "error": "session_not_found"}
    except PaymentIncomplete as e:
        logger.info("Session %s completed without payment (%s); waiting for async payment",
                    session_id, e.payment_status)
        return {"received": True, "status": "payment_pending"}

    order = result.order
    if result.created:
        write_log(db, user_id=order.user_id, action="ORDER_CREATE", resource="orders", status="SUCCESS",
                  ip=client_ip(request),
                  meta={"order_id": order.id, "order_number": order.order_number, "session_id": session_id})
    return {"received": True, "order_number": order.order_number, "duplicate": not result.created}


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    client: StripeClient = Depends(get_payment_client),
    stripe_signature: str = Header(None, alias="stripe-signature"),
):
    if stripe_signature is None:
        raise HTTPException(status_code=400, detail="Missing stripe-signature header")

    body = await request.body()
    try:
        event = client.construct_event(body, stripe_signature)
    except WebhookSignatureError as e:
        logger.warning("Stripe webhook signature verification failed: %s", e)
        raise HTTPException(status_code=400, detail="Invalid signature")
    except PaymentProviderError as e:
        logger.error("Stripe webhook cannot be verified: %s", e)
        raise HTTPException(status_code=500, detail="Webhook not configured")

    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}
    logger.info("Stripe webhook received: %s (%s)", event_type, event.get("id"))

    try:
        if event_type == "checkout.session.completed":
            return _handle_session_completed(db, client, obj, request)

        if event_type == "payment_intent.succeeded":
            order = mark_payment_succeeded(db, obj)
        elif event_type == "payment_intent.payment_failed":
            order = mark_payment_failed(db, obj)
            if order:
                logger.warning("Payment failed for order %s", order.order_number)
        elif event_type == "charge.refunded":
            order = apply_refund(db, obj)
            if order:
                write_log(db, user_id=None, action="ORDER_REFUND", resource="orders", status="SUCCESS",
                          ip=client_ip(request),
                          meta={"order_id": order.id, "payment_status": order.payment_status})
        elif event_type == "charge.dispute.created":
            logger.warning("Dispute opened for charge %s (reason: %s)", obj.get("charge"), obj.get("reason"))
            return {"received": True}
        else:
            logger.info("Unhandled Stripe event type: %s", event_type)
            return {"received": True, "ignored": event_type}
    except PaymentProviderError as e:
        # Transient Stripe failure, let Stripe retry the delivery
        logger.error("Stripe API error while handling %s: %s", event_type, e)
        raise HTTPException(status_code=502, detail="Payment provider unavailable")

    if order is None:
        logger.info("No order matches %s event %s", event_type, event.get("id"))
        return {"received": True, "error": "order_not_found"}
    return {"received": True, "order_number": order.order_number}
