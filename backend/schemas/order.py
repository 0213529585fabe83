from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime


class OrderItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: Optional[int] = None
    variant_id: Optional[int] = None
    product_name: str
    variant_name: Optional[str] = None
    sku: Optional[str] = None
    quantity: int
    unit_price: float
    total_price: float


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_number: str
    email: str
    status: str
    payment_status: str
    fulfillment_status: str
    subtotal: float
    discount_amount: float
    shipping_amount: float
    tax_amount: float
    total: float
    currency: str
    shipping_address: Optional[Dict[str, Any]] = None
    billing_address: Optional[Dict[str, Any]] = None
    shipping_method: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    customer_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[OrderItemOut] = []


# Admin view adds internal fields
class AdminOrderResponse(OrderResponse):
    user_id: Optional[int] = None
    notes: Optional[str] = None
    stripe_checkout_session_id: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None
    version: int


# Schema for paginated order lists
class OrdersPage(BaseModel):
    items: List[OrderResponse]
    total: int
    page: int
    page_size: int


class AdminOrdersPage(BaseModel):
    items: List[AdminOrderResponse]
    total: int
    page: int
    page_size: int


OrderStatusLiteral = Literal[
    "pending", "confirmed", "processing", "shipped", "delivered", "cancelled", "refunded"
]


# Partial admin update; omitted fields are left alone
class OrderUpdate(BaseModel):
    status: Optional[OrderStatusLiteral] = None
    fulfillment_status: Optional[Literal["unfulfilled", "partial", "fulfilled"]] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    notes: Optional[str] = None
    # Expected current version; omit for last-write-wins
    version: Optional[int] = Field(default=None, ge=1)


# Returned by /checkout/success once the order exists
class OrderConfirmation(BaseModel):
    id: int
    order_number: str
    status: str
    payment_status: str
    total: float
    email: str
    item_count: int
    created_at: Optional[datetime] = None
