# backend/routes/admin.py
import logging
from typing import List, Literal, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from database import get_db
from models.order import Order
from models.recipe import RecipeRating
from models.users import User
from schemas.order import AdminOrderResponse, AdminOrdersPage, OrderStatusLiteral, OrderUpdate
from schemas.recipe import RatingOut
from utils.audit import client_ip, write_log
from utils.order_workflow import InvalidTransition, VersionConflict, update_order
from utils.ratings import delete_rating, set_approval
from utils.tokenJWT import require_admin

router = APIRouter(prefix="/admin", tags=["Admin"])
logger = logging.getLogger(__name__)


def _get_order_or_404(db: Session, order_id: int) -> Order:
    order = db.query(Order).options(selectinload(Order.items)).filter(Order.id == order_id).first()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


# Order list with filtering, sorting, and pagination (Admin only)
@router.get("/orders", response_model=AdminOrdersPage)
def list_orders(
    status_filter: Optional[OrderStatusLiteral] = Query(None, alias="status"),
    q: Optional[str] = Query(None, description="Search by order number or e-mail"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    order: Literal["asc", "desc"] = "desc",
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    query = db.query(Order).options(selectinload(Order.items))

    if status_filter:
        query = query.filter(Order.status == status_filter)

    if q:
        like = f"%{q.strip()}%"
        query = query.filter(or_(Order.order_number.ilike(like), Order.email.ilike(like)))

    col = Order.created_at
    query = query.order_by(col.asc() if order == "asc" else col.desc(), Order.id.desc())

    total = query.count()
    rows = query.offset((page - 1) * page_size).limit(page_size).all()
    return {"items": rows, "total": total, "page": page, "page_size": page_size}


@router.get("/orders/{order_id}", response_model=AdminOrderResponse)
def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return _get_order_or_404(db, order_id)


# Partial update of status, tracking and notes. Send the version you read
# to get a 409 instead of overwriting someone else's edit.
@router.api_route("/orders/{order_id}", methods=["POST", "PATCH"], response_model=AdminOrderResponse)
def edit_order(
    order_id: int,
    payload: OrderUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    order = _get_order_or_404(db, order_id)

    try:
        changes = update_order(db, order, payload)
    except VersionConflict as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except InvalidTransition as e:
        raise HTTPException(status_code=400, detail=str(e))

    if changes:
        write_log(db, user_id=current_user.id, action="ORDER_UPDATE", resource="orders", status="SUCCESS",
                  ip=client_ip(request),
                  meta={"order_id": order.id, "changes": {k: [old, new] for k, (old, new) in changes.items()}})

    return _get_order_or_404(db, order_id)


# Moderation queue
@router.get("/ratings", response_model=List[RatingOut])
def list_ratings(
    approved: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    query = db.query(RecipeRating).filter(RecipeRating.is_approved == approved)
    return query.order_by(RecipeRating.created_at.desc(), RecipeRating.id.desc()).limit(limit).all()


def _get_rating_or_404(db: Session, rating_id: int) -> RecipeRating:
    rating = db.get(RecipeRating, rating_id)
    if not rating:
        raise HTTPException(status_code=404, detail="Rating not found")
    return rating


@router.post("/ratings/{rating_id}/approve", response_model=RatingOut)
def approve_rating(
    rating_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    rating = set_approval(db, _get_rating_or_404(db, rating_id), True)
    write_log(db, user_id=current_user.id, action="RATING_APPROVE", resource="ratings", status="SUCCESS",
              ip=client_ip(request), meta={"rating_id": rating.id, "recipe_id": rating.recipe_id})
    return rating


@router.delete("/ratings/{rating_id}")
def remove_rating(
    rating_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    rating = _get_rating_or_404(db, rating_id)
    recipe = rating.recipe
    delete_rating(db, rating)
    write_log(db, user_id=current_user.id, action="RATING_DELETE", resource="ratings", status="SUCCESS",
              ip=client_ip(request), meta={"rating_id": rating_id, "recipe_id": recipe.id})
    return {"message": "Rating deleted", "average_rating": recipe.average_rating, "rating_count": recipe.rating_count}
