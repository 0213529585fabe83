import copy
import json
import os

# Must be set before config/database are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["TAX_RATE_PERCENT"] = "0"
os.environ["TAX_FLAT_AMOUNT"] = "0"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
from main import app
from models.catalog import Product, ProductCategory, ProductVariant
from models.order import Order, OrderItem
from models.recipe import GameType, Recipe
from models.users import User
from utils.hashing import get_password_hash
from utils.shopify_client import ShopifyClient, get_catalog_client
from utils.stripe_client import PaymentProviderError, WebhookSignatureError, get_payment_client
from utils.tokenJWT import create_access_token

engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

VALID_SIGNATURE = "t=1,v1=valid"


def _stripe_line(name, unit_amount, quantity, metadata):
    return {
        "description": name,
        "quantity": quantity,
        "amount_subtotal": unit_amount * quantity,
        "price": {"unit_amount": unit_amount, "product": {"name": name, "metadata": dict(metadata)}},
    }


class FakeStripe:
    """Stands in for StripeClient; sessions come back shaped like an expanded retrieve."""

    currency = "usd"

    def __init__(self):
        self.sessions = {}
        self.created = []
        self.coupons = []
        self.fail_create = False

    def create_coupon(self, *, name, amount_off):
        coupon = {"id": f"coupon_{len(self.coupons) + 1}", "name": name, "amount_off": amount_off}
        self.coupons.append(coupon)
        return coupon

    def create_checkout_session(self, *, line_items, customer_email, metadata, coupon_id=None):
        if self.fail_create:
            raise PaymentProviderError("card_declined")
        session_id = f"cs_test_{len(self.sessions) + 1}"
        data = [
            _stripe_line(li["price_data"]["product_data"]["name"], li["price_data"]["unit_amount"],
                         li["quantity"], li["price_data"]["product_data"].get("metadata", {}))
            for li in line_items
        ]
        discount = 0
        if coupon_id:
            discount = next(c["amount_off"] for c in self.coupons if c["id"] == coupon_id)
        self.created.append({"line_items": line_items, "customer_email": customer_email,
                             "metadata": metadata, "coupon_id": coupon_id})
        self._store(session_id, data, metadata, customer_email, discount, "unpaid")
        return {"id": session_id, "url": f"https://checkout.stripe.test/{session_id}"}

    def _store(self, session_id, data, metadata, email, discount_cents, payment_status):
        self.sessions[session_id] = {
            "id": session_id,
            "payment_status": payment_status,
            "customer_email": email,
            "customer_details": {"email": email},
            "currency": "usd",
            "metadata": dict(metadata),
            "line_items": {"data": data},
            "total_details": {"amount_discount": discount_cents},
            "amount_total": sum(li["amount_subtotal"] for li in data) - discount_cents,
            "payment_intent": f"pi_{session_id}",
        }

    def pay(self, session_id):
        self.sessions[session_id]["payment_status"] = "paid"

    def paid_session(self, lines, shipping=0.0, tax=0.0, discount_cents=0, metadata=None,
                     email="hunter@example.com"):
        """Register a paid session buying [(variant, qty), ...] and return its id."""
        session_id = f"cs_test_{len(self.sessions) + 1}"
        data = []
        for variant, qty in lines:
            data.append(_stripe_line(
                f"{variant.product.name} - {variant.name}", int(round(variant.effective_price * 100)), qty,
                {"line_kind": "product", "product_id": str(variant.product_id), "variant_id": str(variant.id)},
            ))
        if shipping:
            data.append(_stripe_line("Standard Shipping", int(round(shipping * 100)), 1, {"line_kind": "shipping"}))
        if tax:
            data.append(_stripe_line("Sales tax", int(round(tax * 100)), 1, {"line_kind": "tax"}))
        meta = {
            "shipping_amount": f"{shipping:.2f}",
            "tax_amount": f"{tax:.2f}",
            "shipping_rate_name": "Standard Shipping",
            "shipping_address": json.dumps({"first_name": "Sam", "city": "Bozeman", "state": "MT"}),
        }
        meta.update(metadata or {})
        self._store(session_id, data, meta, email, discount_cents, "paid")
        return session_id

    def retrieve_session(self, session_id):
        session = self.sessions.get(session_id)
        return copy.deepcopy(session) if session else None

    def construct_event(self, payload, signature):
        if signature != VALID_SIGNATURE:
            raise WebhookSignatureError("No signatures found matching the expected signature")
        return json.loads(payload)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


# A second connection-level view of the same database, for concurrent edits
@pytest.fixture
def other_db(db):
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def payment():
    return FakeStripe()


@pytest.fixture
def catalog():
    # Unconfigured: the shop falls back to the local catalog
    return ShopifyClient(None, None)


@pytest.fixture
def client(db, payment, catalog):
    def _get_test_db():
        yield db

    app.dependency_overrides[get_db] = _get_test_db
    app.dependency_overrides[get_payment_client] = lambda: payment
    app.dependency_overrides[get_catalog_client] = lambda: catalog
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def product(db):
    category = ProductCategory(name="Apparel", slug="apparel")
    product = Product(
        name="Hunt Kitchen Tee", slug="hunt-kitchen-tee", base_price=24.99, sku="TEE",
        weight_oz=8, category=category,
    )
    product.variants.append(ProductVariant(
        name="Large", sku="TEE-L", inventory_quantity=10, option1_name="Size", option1_value="L",
    ))
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@pytest.fixture
def variant(product):
    return product.variants[0]


@pytest.fixture
def second_variant(db):
    product = Product(name="Backstrap Rub", slug="backstrap-rub", base_price=12.50, weight_oz=4)
    product.variants.append(ProductVariant(name="8 oz", sku="RUB-8", inventory_quantity=5))
    db.add(product)
    db.commit()
    db.refresh(product)
    return product.variants[0]


def _make_user(db, email, role):
    user = User(email=email, password_hash=get_password_hash("password123"), role=role,
                first_name="Test", last_name=role.title())
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin_user(db):
    return _make_user(db, "admin@huntkitchen.com", "admin")


@pytest.fixture
def customer(db):
    return _make_user(db, "hunter@example.com", "customer")


@pytest.fixture
def other_customer(db):
    return _make_user(db, "angler@example.com", "customer")


def auth_headers(user):
    token = create_access_token(data={"sub": user.email, "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(admin_user):
    return auth_headers(admin_user)


@pytest.fixture
def customer_headers(customer):
    return auth_headers(customer)


@pytest.fixture
def other_customer_headers(other_customer):
    return auth_headers(other_customer)


@pytest.fixture
def order(db, customer):
    order = Order(
        order_number="THK-TEST-0001",
        user_id=customer.id,
        email=customer.email,
        status="confirmed",
        payment_status="paid",
        fulfillment_status="unfulfilled",
        subtotal=49.98,
        discount_amount=0.0,
        shipping_amount=5.99,
        tax_amount=2.0,
        total=57.97,
        currency="USD",
        shipping_address={"first_name": "Sam", "last_name": "Hunter", "city": "Bozeman", "state": "MT"},
        shipping_method="Standard Shipping",
        customer_notes="Leave at the gate",
        stripe_checkout_session_id="cs_test_fixture",
        stripe_payment_intent_id="pi_fixture",
    )
    order.items.append(OrderItem(
        product_name="Hunt Kitchen Tee", variant_name="Large", sku="TEE-L",
        quantity=2, unit_price=24.99, total_price=49.98,
    ))
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


@pytest.fixture
def recipe(db):
    recipe = Recipe(
        title="Grilled Venison Backstrap",
        slug="grilled-venison-backstrap",
        description="Hot and fast.",
        game_type=GameType(name="Venison", slug="venison"),
        ingredients=[{"amount": "2", "unit": "lb", "ingredient": "venison backstrap"}],
        instructions=[{"step_number": 1, "text": "Grill to 130F."}],
    )
    db.add(recipe)
    db.commit()
    db.refresh(recipe)
    return recipe


SHIPPING_ADDRESS = {
    "first_name": "Sam",
    "last_name": "Hunter",
    "street_address1": "12 Elk Ridge Rd",
    "city": "Bozeman",
    "state": "mt",
    "postal_code": "59715",
}


@pytest.fixture
def checkout_payload():
    return {
        "email": "hunter@example.com",
        "shipping_address": dict(SHIPPING_ADDRESS),
        "same_as_shipping": True,
        "shipping_rate_id": "standard",
    }
