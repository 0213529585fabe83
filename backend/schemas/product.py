from pydantic import BaseModel, ConfigDict
from typing import Dict, List, Optional, Union


# Base configuration for ORM compatibility
class ORMBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class ProductCategoryOut(ORMBase):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    parent_id: Optional[int] = None
    display_order: int = 0


# Local variants have integer ids, Shopify ones are GraphQL gids
class VariantOut(ORMBase):
    id: Union[int, str]
    name: str
    sku: Optional[str] = None
    price: float
    compare_at_price: Optional[float] = None
    options: Dict[str, Optional[str]] = {}
    image_url: Optional[str] = None
    inventory_quantity: Optional[int] = None
    available: bool


# Storefront product, from the local catalog or normalized from Shopify
class ShopProduct(BaseModel):
    id: str
    source: str
    name: str
    slug: str
    description: Optional[str] = None
    category: Optional[str] = None
    price: float
    compare_at_price: Optional[float] = None
    image_url: Optional[str] = None
    available: bool = True
    variants: List[VariantOut] = []


class ShopProductPage(BaseModel):
    items: List[ShopProduct]
    total: int
    page: int
    page_size: int
    source: str
    # Shopify pages by cursor; pass it back as ?after=
    next_cursor: Optional[str] = None
