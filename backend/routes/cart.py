# backend/routes/cart.py
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from database import get_db
from utils.tokenJWT import get_current_user, get_optional_user
from utils.audit import client_ip, write_log
from utils.cart_store import CartError, CartStore, generate_session_id, get_or_create_cart
from utils.checkout import find_discount_code
from utils.pricing import DiscountError, check_discount, discount_amount
from models.users import User
from models.cart import Cart
from models.catalog import ProductVariant
from schemas.cart import (
    AppliedDiscountOut, CartAddItem, CartDiscountRequest, CartItemOut, CartOut, CartUpdateItem,
)

router = APIRouter(prefix="/cart", tags=["Cart"])

CART_SESSION_HEADER = "X-Cart-Session"
CART_SESSION_COOKIE = "cart_session_id"
CART_SESSION_MAX_AGE = 60 * 60 * 24 * 30


def _guest_session_id(request: Request) -> Optional[str]:
    return request.headers.get(CART_SESSION_HEADER) or request.cookies.get(CART_SESSION_COOKIE)


# Resolve the caller's cart: the user's own when logged in, otherwise the
# guest cart session (issued on first use and echoed back)
def current_cart(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
) -> Cart:
    if current_user:
        return get_or_create_cart(db, user_id=current_user.id)

    session_id = _guest_session_id(request) or generate_session_id()
    cart = get_or_create_cart(db, session_id=session_id)
    response.set_cookie(
        CART_SESSION_COOKIE, session_id, max_age=CART_SESSION_MAX_AGE, httponly=True, samesite="lax"
    )
    response.headers[CART_SESSION_HEADER] = session_id
    return cart


def _cart_to_out(store: CartStore) -> CartOut:
    return CartOut(
        id=store.cart.id,
        session_id=store.cart.session_id,
        items=[CartItemOut.model_validate(it) for it in store.items],
        item_count=store.item_count(),
        subtotal=store.subtotal(),
        total=store.total(),
    )


@router.get("", response_model=CartOut)
def get_cart(cart: Cart = Depends(current_cart), db: Session = Depends(get_db)):
    return _cart_to_out(CartStore(db, cart))


@router.post("/items", response_model=CartOut, status_code=status.HTTP_200_OK)
def add_to_cart(
    payload: CartAddItem,
    request: Request,
    cart: Cart = Depends(current_cart),
    db: Session = Depends(get_db),
):
    variant = db.query(ProductVariant).filter(
        ProductVariant.id == payload.variant_id, ProductVariant.product_id == payload.product_id
    ).first()
    if not variant:
        raise HTTPException(status_code=404, detail="Product variant not found")

    store = CartStore(db, cart)
    try:
        item = store.add_item(variant.product, variant, payload.quantity)
    except CartError as e:
        raise HTTPException(status_code=400, detail=str(e))

    write_log(db, user_id=cart.user_id, action="CART_ADD", resource="cart", status="SUCCESS",
              ip=client_ip(request), meta={"cart_id": cart.id, "variant_id": variant.id, "qty": item.quantity})
    return _cart_to_out(store)


# Quantities below 1 leave the line untouched; use DELETE to remove it
@router.patch("/items/{variant_id}", response_model=CartOut)
def update_cart_item(
    variant_id: int,
    payload: CartUpdateItem,
    cart: Cart = Depends(current_cart),
    db: Session = Depends(get_db),
):
    store = CartStore(db, cart)
    if store.get_item(variant_id) is None:
        raise HTTPException(status_code=404, detail="Cart item not found")
    store.update_quantity(variant_id, payload.quantity)
    return _cart_to_out(store)


@router.delete("/items/{variant_id}", response_model=CartOut)
def remove_cart_item(
    variant_id: int,
    request: Request,
    cart: Cart = Depends(current_cart),
    db: Session = Depends(get_db),
):
    store = CartStore(db, cart)
    if not store.remove_item(variant_id):
        raise HTTPException(status_code=404, detail="Cart item not found")

    write_log(db, user_id=cart.user_id, action="CART_REMOVE", resource="cart", status="SUCCESS",
              ip=client_ip(request), meta={"cart_id": cart.id, "variant_id": variant_id})
    return _cart_to_out(store)


# Called right after login: fold the guest cart into the user's cart
@router.post("/merge", response_model=CartOut)
def merge_guest_cart(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    store = CartStore(db, get_or_create_cart(db, user_id=current_user.id))

    session_id = _guest_session_id(request)
    guest = None
    if session_id:
        guest = db.query(Cart).filter(Cart.session_id == session_id, Cart.user_id.is_(None)).first()
    if guest:
        merged_lines = len(guest.items)
        store.merge(guest)
        db.refresh(store.cart)
        write_log(db, user_id=current_user.id, action="CART_MERGE", resource="cart", status="SUCCESS",
                  ip=client_ip(request), meta={"cart_id": store.cart.id, "guest_lines": merged_lines})

    response.delete_cookie(CART_SESSION_COOKIE)
    return _cart_to_out(store)


# Preview a discount code against the current cart; applied for real at checkout
@router.post("/discount", response_model=AppliedDiscountOut)
def apply_discount(
    payload: CartDiscountRequest,
    cart: Cart = Depends(current_cart),
    db: Session = Depends(get_db),
):
    store = CartStore(db, cart)
    if not store.items:
        raise HTTPException(status_code=400, detail="Cart is empty")

    code = find_discount_code(db, payload.code)
    if code is None:
        raise HTTPException(status_code=400, detail="Invalid discount code")

    subtotal = store.subtotal()
    try:
        check_discount(code, subtotal)
    except DiscountError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return AppliedDiscountOut(
        id=code.id,
        code=code.code,
        description=code.description,
        discount_type=code.discount_type.value,
        discount_value=code.discount_value,
        discount_amount=discount_amount(code, subtotal),
    )
