# backend/models/catalog.py
from sqlalchemy import (
    Column, Integer, String, Float, Boolean, Text, ForeignKey, DateTime, CheckConstraint, func
)
from sqlalchemy.orm import relationship
from database import Base


# Shop taxonomy (apparel, seasonings, tools...). Categories may nest one level.
class ProductCategory(Base):
    __tablename__ = "product_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    image_url = Column(String, nullable=True)
    parent_id = Column(Integer, ForeignKey("product_categories.id"), nullable=True)
    display_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    products = relationship("Product", back_populates="category")


# Catalog entry. The price actually charged lives on the variant when it
# overrides base_price.
class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    slug = Column(String, unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    short_description = Column(String, nullable=True)
    category_id = Column(Integer, ForeignKey("product_categories.id"), nullable=True, index=True)

    base_price = Column(Float, CheckConstraint("base_price >= 0"), nullable=False)
    compare_at_price = Column(Float, nullable=True)
    sku = Column(String, nullable=True)

    # When false, variants can be sold regardless of inventory_quantity
    track_inventory = Column(Boolean, default=True, nullable=False)
    weight_oz = Column(Float, nullable=True)

    featured_image_url = Column(String, nullable=True)
    is_featured = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    category = relationship("ProductCategory", back_populates="products")
    variants = relationship(
        "ProductVariant", back_populates="product",
        cascade="all, delete-orphan", order_by="ProductVariant.id",
    )


# A purchasable configuration of a product, e.g. "Large / Olive"
class ProductVariant(Base):
    __tablename__ = "product_variants"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    sku = Column(String, nullable=True, index=True)

    price = Column(Float, nullable=True) # None means "use product.base_price"
    compare_at_price = Column(Float, nullable=True)

    # Up to three named option dimensions
    option1_name = Column(String, nullable=True)
    option1_value = Column(String, nullable=True)
    option2_name = Column(String, nullable=True)
    option2_value = Column(String, nullable=True)
    option3_name = Column(String, nullable=True)
    option3_value = Column(String, nullable=True)

    image_url = Column(String, nullable=True)
    inventory_quantity = Column(
        Integer, CheckConstraint("inventory_quantity >= 0"), nullable=False, default=0
    )
    weight_oz = Column(Float, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    product = relationship("Product", back_populates="variants")

    @property
    def effective_price(self) -> float:
        if self.price is not None:
            return self.price
        return self.product.base_price

    @property
    def effective_weight_oz(self) -> float:
        return self.weight_oz or self.product.weight_oz or 0.0

    @property
    def options(self) -> dict:
        pairs = [
            (self.option1_name, self.option1_value),
            (self.option2_name, self.option2_value),
            (self.option3_name, self.option3_value),
        ]
        return {name: value for name, value in pairs if name}
