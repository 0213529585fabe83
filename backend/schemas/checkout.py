import re
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from typing import List, Optional

ZIP_RE = re.compile(r"^\d{5}(-\d{4})?$")


# US postal address as collected by the checkout form. The whole address is
# stored as one Stripe metadata value, which is capped at 500 characters.
class AddressIn(BaseModel):
    first_name: str = Field(min_length=1, max_length=40)
    last_name: str = Field(min_length=1, max_length=40)
    street_address1: str = Field(min_length=1, max_length=80)
    street_address2: Optional[str] = Field(default=None, max_length=80)
    city: str = Field(min_length=1, max_length=50)
    state: str = Field(max_length=10)
    postal_code: str = Field(max_length=10)
    country: str = Field(default="US", min_length=2, max_length=2)
    phone: Optional[str] = Field(default=None, max_length=20)

    @field_validator("first_name", "last_name", "street_address1", "city")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Field is required")
        return value.strip()

    @field_validator("state")
    @classmethod
    def _two_letter_state(cls, value: str) -> str:
        value = value.strip().upper()
        if len(value) != 2 or not value.isalpha():
            raise ValueError("State must be a 2-letter code")
        return value

    @field_validator("postal_code")
    @classmethod
    def _us_zip(cls, value: str) -> str:
        value = value.strip()
        if not ZIP_RE.match(value):
            raise ValueError("Please enter a valid ZIP code")
        return value


class CheckoutSessionRequest(BaseModel):
    email: EmailStr
    shipping_address: AddressIn
    billing_address: Optional[AddressIn] = None
    same_as_shipping: bool = True
    shipping_rate_id: str = Field(min_length=1)
    discount_code: Optional[str] = None
    customer_notes: Optional[str] = None

    # Billing falls back to shipping when the box is ticked or nothing was sent
    @model_validator(mode="after")
    def _resolve_billing(self):
        if self.same_as_shipping or self.billing_address is None:
            self.billing_address = self.shipping_address
        return self


class ShippingQuoteRequest(BaseModel):
    street_address1: str = Field(min_length=1)
    street_address2: Optional[str] = None
    city: str = Field(min_length=1)
    state: str = Field(min_length=2)
    postal_code: str = Field(min_length=5)
    country: str = "US"


class ShippingRateOut(BaseModel):
    id: str
    name: str
    description: str
    price: float
    estimated_days: str


class ShippingQuoteOut(BaseModel):
    rates: List[ShippingRateOut]
    cart_weight_oz: float
    free_shipping_threshold: float
    qualifies_for_free_shipping: bool
    remaining_for_free_shipping: float


class CheckoutTotals(BaseModel):
    subtotal: float
    discount_amount: float
    shipping_amount: float
    tax_amount: float
    total: float


class CheckoutSessionOut(BaseModel):
    session_id: str
    url: Optional[str]
    totals: CheckoutTotals


class ValidatedLine(BaseModel):
    cart_item_id: int
    product_id: int
    variant_id: int
    product_name: str
    variant_name: Optional[str] = None
    quantity: int
    unit_price: float
    line_total: float


class LineProblem(BaseModel):
    cart_item_id: int
    product_name: str
    error: str


class CartValidationOut(BaseModel):
    valid: bool
    items: List[ValidatedLine] = []
    errors: List[LineProblem] = []
    subtotal: float = 0.0
    item_count: int = 0
