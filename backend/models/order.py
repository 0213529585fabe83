import enum
from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, JSON, Text, func
from sqlalchemy.orm import relationship
from database import Base


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class FulfillmentStatus(str, enum.Enum):
    UNFULFILLED = "unfulfilled"
    PARTIAL = "partial"
    FULFILLED = "fulfilled"


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String, unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    email = Column(String, nullable=False)

    status = Column(String, default=OrderStatus.PENDING.value, nullable=False, index=True)
    payment_status = Column(String, default=PaymentStatus.PENDING.value, nullable=False)
    fulfillment_status = Column(String, default=FulfillmentStatus.UNFULFILLED.value, nullable=False)

    # total = subtotal - discount_amount + shipping_amount + tax_amount
    subtotal = Column(Float, nullable=False)
    discount_amount = Column(Float, nullable=False, default=0.0)
    shipping_amount = Column(Float, nullable=False, default=0.0)
    tax_amount = Column(Float, nullable=False, default=0.0)
    total = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")

    # Address dicts as submitted at checkout (first_name, street_address1, ...)
    shipping_address = Column(JSON, nullable=True)
    billing_address = Column(JSON, nullable=True)
    shipping_method = Column(String, nullable=True)

    tracking_number = Column(String, nullable=True)
    tracking_url = Column(String, nullable=True)
    notes = Column(Text, nullable=True) # internal, admin only
    customer_notes = Column(Text, nullable=True)

    # Payment integration details
    stripe_checkout_session_id = Column(String, unique=True, nullable=True, index=True)
    stripe_payment_intent_id = Column(String, nullable=True, index=True)
    discount_code_id = Column(Integer, ForeignKey("discount_codes.id"), nullable=True)

    # Bumped by the mapper on every UPDATE; a stale row raises StaleDataError
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    items = relationship(
        "OrderItem", back_populates="order",
        cascade="all, delete-orphan", order_by="OrderItem.id",
    )
    discount_code = relationship("DiscountCode")

    __mapper_args__ = {"version_id_col": version}


# Point-in-time copy of what was bought; product edits never touch it
class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id", ondelete="SET NULL"), nullable=True)

    product_name = Column(String, nullable=False)
    variant_name = Column(String, nullable=True)
    sku = Column(String, nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Float, nullable=False)
    total_price = Column(Float, nullable=False)

    order = relationship("Order", back_populates="items")
