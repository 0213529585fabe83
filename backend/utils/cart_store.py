# utils/cart_store.py
import logging
import secrets
from typing import Optional

from sqlalchemy.orm import Session

from models.cart import Cart, CartItem
from models.catalog import Product, ProductVariant
from utils.pricing import round_money

logger = logging.getLogger(__name__)


class CartError(ValueError):
    """The requested cart change is not possible (inactive product, no stock...)."""


def generate_session_id() -> str:
    return secrets.token_hex(32)


def get_or_create_cart(db: Session, user_id: Optional[int] = None, session_id: Optional[str] = None) -> Cart:
    # Logged-in shoppers own one cart; guests are tracked by their cart session
    if user_id:
        cart = db.query(Cart).filter(Cart.user_id == user_id).first()
    elif session_id:
        cart = db.query(Cart).filter(Cart.session_id == session_id, Cart.user_id.is_(None)).first()
    else:
        cart = None

    if not cart:
        cart = Cart(user_id=user_id or None, session_id=None if user_id else session_id)
        db.add(cart)
        db.commit()
        db.refresh(cart)
    return cart


def _available(product: Product, variant: ProductVariant) -> Optional[int]:
    if not product.track_inventory:
        return None
    return max(variant.inventory_quantity or 0, 0)


class CartStore:
    """Line items of one cart plus the totals shown to the shopper.

    Lines are keyed by variant id. Prices stored on the lines are display
    snapshots; checkout reprices everything from the catalog.
    """

    def __init__(self, db: Session, cart: Cart):
        self.db = db
        self.cart = cart

    @property
    def items(self):
        return list(self.cart.items)

    def get_item(self, variant_id: int) -> Optional[CartItem]:
        for item in self.cart.items:
            if item.variant_id == variant_id:
                return item
        return None

    def add_item(self, product: Product, variant: ProductVariant, quantity: int) -> CartItem:
        if quantity < 1:
            raise CartError("Quantity must be at least 1")
        if variant.product_id != product.id:
            raise CartError("Variant does not belong to product")
        if not product.is_active:
            raise CartError("Product is not available")
        if not variant.is_active:
            raise CartError("Variant is not available")

        item = self.get_item(variant.id)
        wanted = quantity + (item.quantity if item else 0)

        available = _available(product, variant)
        if available is not None:
            if available < 1:
                raise CartError(f'"{product.name} - {variant.name}" is out of stock')
            wanted = min(wanted, available)

        if item:
            item.quantity = wanted
        else:
            item = CartItem(
                product_id=product.id,
                variant_id=variant.id,
                quantity=wanted,
                unit_price=variant.effective_price,
                compare_at_price=variant.compare_at_price or product.compare_at_price,
                product_name=product.name,
                product_slug=product.slug,
                product_image_url=variant.image_url or product.featured_image_url,
                variant_title=variant.name,
                variant_sku=variant.sku or product.sku,
            )
            self.cart.items.append(item)

        self.db.commit()
        self.db.refresh(item)
        logger.debug("cart %s: variant %s -> qty %s", self.cart.id, variant.id, item.quantity)
        return item

    def update_quantity(self, variant_id: int, quantity: int) -> Optional[CartItem]:
        item = self.get_item(variant_id)
        if item is None or quantity < 1:
            return item

        variant = item.variant
        available = _available(variant.product, variant) if variant else None
        if available is not None:
            if available < 1:
                # Sold out since it was added; leave the line for revalidation to flag
                return item
            quantity = min(quantity, available)

        item.quantity = quantity
        self.db.commit()
        self.db.refresh(item)
        return item

    def remove_item(self, variant_id: int) -> bool:
        item = self.get_item(variant_id)
        if item is None:
            return False
        self.cart.items.remove(item)
        self.db.commit()
        return True

    def clear(self) -> None:
        self.cart.items.clear()
        self.db.commit()

    def merge(self, other: Cart) -> None:
        """Fold a guest cart into this one and delete it."""
        if other.id == self.cart.id:
            return
        for line in list(other.items):
            variant, product = line.variant, line.product
            if variant is None or product is None or not (product.is_active and variant.is_active):
                continue
            try:
                self.add_item(product, variant, line.quantity)
            except CartError as e:
                logger.info("Skipping guest cart line %s during merge: %s", line.id, e)
        self.db.delete(other)
        self.db.commit()

    def item_count(self) -> int:
        return sum(item.quantity for item in self.cart.items)

    def subtotal(self) -> float:
        return round_money(sum(item.unit_price * item.quantity for item in self.cart.items))

    # Shipping and tax are added server-side at checkout
    def total(self) -> float:
        return self.subtotal()
