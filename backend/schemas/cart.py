from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional

# Request schema for adding a variant to the cart
class CartAddItem(BaseModel):
    product_id: int
    variant_id: int
    quantity: int = Field(default=1, ge=1)

# Quantities below 1 are accepted here and ignored by the store
class CartUpdateItem(BaseModel):
    quantity: int

class CartDiscountRequest(BaseModel):
    code: str = Field(min_length=1)

class CartItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    variant_id: int
    quantity: int
    unit_price: float
    compare_at_price: Optional[float] = None
    product_name: str
    product_slug: Optional[str] = None
    product_image_url: Optional[str] = None
    variant_title: Optional[str] = None
    variant_sku: Optional[str] = None
    line_total: float

class CartOut(BaseModel):
    id: int
    session_id: Optional[str] = None
    items: List[CartItemOut]
    item_count: int
    subtotal: float
    total: float

class AppliedDiscountOut(BaseModel):
    id: int
    code: str
    description: Optional[str] = None
    discount_type: str
    discount_value: float
    discount_amount: float
