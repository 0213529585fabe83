from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Float, UniqueConstraint, func
from sqlalchemy.orm import relationship
from database import Base

# A shopper's cart, owned either by a user or by a guest cart session
class Cart(Base):
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=True)
    session_id = Column(String(64), index=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    items = relationship(
        "CartItem", back_populates="cart",
        cascade="all, delete-orphan", order_by="CartItem.id",
    )


# One line per variant. Prices and names are snapshots for display only;
# checkout re-reads the catalog.
class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(Integer, ForeignKey("carts.id"), index=True, nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), index=True, nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), index=True, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)

    unit_price = Column(Float, nullable=False)
    compare_at_price = Column(Float, nullable=True)

    product_name = Column(String, nullable=False)
    product_slug = Column(String, nullable=True)
    product_image_url = Column(String, nullable=True)
    variant_title = Column(String, nullable=True)
    variant_sku = Column(String, nullable=True)

    added_at = Column(DateTime(timezone=True), server_default=func.now())

    cart = relationship("Cart", back_populates="items")
    product = relationship("Product")
    variant = relationship("ProductVariant")

    __table_args__ = (
        UniqueConstraint("cart_id", "variant_id", name="uq_cartitem_cart_variant"),
    )

    @property
    def line_total(self) -> float:
        return round(self.unit_price * self.quantity, 2)
