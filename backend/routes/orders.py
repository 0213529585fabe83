# backend/routes/orders.py
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session, selectinload

from database import get_db
from utils.tokenJWT import get_current_user
from models.users import User
from models.order import Order
from schemas.order import OrderResponse, OrdersPage

router = APIRouter(prefix="/orders", tags=["Orders"])


# List the caller's own orders, newest first
@router.get("", response_model=OrdersPage)
def list_my_orders(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    q = db.query(Order).options(selectinload(Order.items)).filter(
        Order.user_id == current_user.id
    ).order_by(Order.created_at.desc(), Order.id.desc())
    total = q.count()
    rows = q.offset((page - 1) * page_size).limit(page_size).all()
    return {"items": rows, "total": total, "page": page, "page_size": page_size}


# Other customers' orders are reported as missing, not forbidden
@router.get("/{order_id}", response_model=OrderResponse)
def get_order_detail(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    o = db.query(Order).options(selectinload(Order.items)).filter(Order.id == order_id).first()
    if not o or (o.user_id != current_user.id and not current_user.is_admin):
        raise HTTPException(status_code=404, detail="Order not found")
    return o
