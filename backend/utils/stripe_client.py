# utils/stripe_client.py
import logging
from typing import Any, Dict, List, Optional

import stripe
from fastapi import Request

from config import settings

logger = logging.getLogger(__name__)

# Stripe's maximum page size for list endpoints
LINE_ITEM_PAGE_SIZE = 100


class PaymentProviderError(Exception):
    """Stripe refused or could not be reached."""


class WebhookSignatureError(Exception):
    """The payload was not signed with our webhook secret."""


def _plain(obj: Any) -> Any:
    # StripeObject -> nested builtin dicts/lists, so callers never depend on SDK types
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    for attr in ("to_dict_recursive", "to_dict"):
        fn = getattr(obj, attr, None)
        if callable(fn):
            return fn()
    if isinstance(obj, dict):
        return {k: _plain(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_plain(v) for v in obj]
    return obj


class StripeClient:
    """Thin wrapper over the Stripe SDK holding its own key and URLs.

    One instance is built at startup and handed to routes through
    get_payment_client, so nothing relies on the SDK's global api_key.
    """

    def __init__(
        self,
        api_key: str,
        webhook_secret: str = "",
        currency: str = "usd",
        success_url: str = "",
        cancel_url: str = "",
    ):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.currency = currency
        self.success_url = success_url
        self.cancel_url = cancel_url

    @classmethod
    def from_settings(cls) -> "StripeClient":
        frontend = settings.FRONTEND_URL.rstrip("/")
        return cls(
            api_key=settings.STRIPE_SECRET_KEY,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
            currency=settings.STRIPE_CURRENCY,
            success_url=f"{frontend}/checkout/success",
            cancel_url=f"{frontend}/checkout",
        )

    def _require_key(self):
        if not self.api_key:
            raise PaymentProviderError("STRIPE_SECRET_KEY is not configured")

    def create_coupon(self, *, name: str, amount_off: int) -> Dict[str, Any]:
        """One-off fixed-amount coupon, amount_off in cents."""
        self._require_key()
        params: Dict[str, Any] = {
            "duration": "once", "name": name, "amount_off": amount_off, "currency": self.currency,
        }
        try:
            return _plain(stripe.Coupon.create(api_key=self.api_key, **params))
        except stripe.StripeError as e:
            logger.error("Stripe coupon create error: %s", e)
            raise PaymentProviderError(str(e)) from e

    def create_checkout_session(
        self,
        *,
        line_items: List[Dict[str, Any]],
        customer_email: str,
        metadata: Dict[str, str],
        coupon_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        self._require_key()
        params: Dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": line_items,
            "customer_email": customer_email,
            "billing_address_collection": "auto",
            "phone_number_collection": {"enabled": True},
            "metadata": metadata,
            "success_url": f"{self.success_url}?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": self.cancel_url,
        }
        if coupon_id:
            params["discounts"] = [{"coupon": coupon_id}]
        try:
            session = stripe.checkout.Session.create(api_key=self.api_key, **params)
        except stripe.StripeError as e:
            logger.error("Stripe checkout session error: %s", e)
            raise PaymentProviderError(str(e)) from e
        return _plain(session)

    def retrieve_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Session with every line item (and its product metadata); None if unknown.

        The line item list embedded by expand is only the first page, so the
        items are fetched through list_line_items and paged to the end.
        """
        self._require_key()
        try:
            session = _plain(stripe.checkout.Session.retrieve(
                session_id, api_key=self.api_key, expand=["payment_intent"],
            ))
            pages = stripe.checkout.Session.list_line_items(
                session_id, api_key=self.api_key, limit=LINE_ITEM_PAGE_SIZE, expand=["data.price.product"],
            )
            line_items = [_plain(li) for li in pages.auto_paging_iter()]
        except stripe.InvalidRequestError as e:
            logger.warning("Stripe session %s not found: %s", session_id, e)
            return None
        except stripe.StripeError as e:
            logger.error("Stripe session retrieve error: %s", e)
            raise PaymentProviderError(str(e)) from e

        session["line_items"] = {"object": "list", "data": line_items, "has_more": False}
        return session

    def construct_event(self, payload: bytes, signature: str) -> Dict[str, Any]:
        if not self.webhook_secret:
            raise PaymentProviderError("STRIPE_WEBHOOK_SECRET is not configured")
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            raise WebhookSignatureError(str(e)) from e
        return _plain(event)


def get_payment_client(request: Request) -> StripeClient:
    return request.app.state.payment_client
