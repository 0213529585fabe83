# backend/routes/recipes.py
from typing import Literal, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from database import get_db
from models.recipe import GameType, Recipe, RecipeCategory, RecipeRating
from models.users import User
from schemas.recipe import (
    RatingCreate, RatingOut, RatingsSummary, RatingSubmitted, RecipeDetail, RecipePage,
)
from utils.audit import client_ip, write_log
from utils.ratings import submit_rating
from utils.tokenJWT import get_optional_user

router = APIRouter(prefix="/recipes", tags=["Recipes"])


def _published_recipe_or_404(db: Session, slug: str) -> Recipe:
    recipe = db.query(Recipe).filter(Recipe.slug == slug, Recipe.is_published.is_(True)).first()
    if not recipe:
        raise HTTPException(status_code=404, detail="Recipe not found")
    return recipe


@router.get("", response_model=RecipePage)
def list_recipes(
    game_type: Optional[str] = Query(None, description="Game type slug"),
    category: Optional[str] = Query(None, description="Recipe category slug"),
    featured: Optional[bool] = None,
    q: Optional[str] = Query(None, description="Search title and description"),
    sort: Literal["newest", "rating", "popular"] = "newest",
    page: int = Query(1, ge=1),
    page_size: int = Query(12, ge=1, le=100),
    db: Session = Depends(get_db),
):
    query = db.query(Recipe).options(selectinload(Recipe.game_type)).filter(Recipe.is_published.is_(True))

    if game_type:
        query = query.join(Recipe.game_type).filter(GameType.slug == game_type)
    if category:
        query = query.filter(Recipe.categories.any(RecipeCategory.slug == category))
    if featured is not None:
        query = query.filter(Recipe.is_featured.is_(featured))
    if q:
        like = f"%{q.strip()}%"
        query = query.filter(or_(Recipe.title.ilike(like), Recipe.description.ilike(like)))

    sort_map = {
        "newest": (Recipe.created_at.desc(), Recipe.id.desc()),
        "rating": (Recipe.average_rating.desc(), Recipe.rating_count.desc()),
        "popular": (Recipe.view_count.desc(), Recipe.id.desc()),
    }
    query = query.order_by(*sort_map[sort])

    total = query.count()
    rows = query.offset((page - 1) * page_size).limit(page_size).all()
    return {"items": rows, "total": total, "page": page, "page_size": page_size}


@router.get("/{slug}", response_model=RecipeDetail)
def get_recipe(slug: str, db: Session = Depends(get_db)):
    recipe = _published_recipe_or_404(db, slug)
    recipe.view_count = (recipe.view_count or 0) + 1
    db.commit()
    db.refresh(recipe)
    return recipe


# Guests may rate too; a logged-in user's second rating replaces the first
@router.post("/{slug}/rate", response_model=RatingSubmitted)
def rate_recipe(
    slug: str,
    payload: RatingCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    recipe = _published_recipe_or_404(db, slug)
    user_id = current_user.id if current_user else None

    rating = submit_rating(db, recipe, user_id, payload.rating, payload.review_text)

    write_log(db, user_id=user_id, action="RATING_SUBMIT", resource="ratings", status="SUCCESS",
              ip=client_ip(request), meta={"recipe_id": recipe.id, "rating_id": rating.id, "rating": rating.rating})

    return RatingSubmitted(
        message="Thanks for rating! Your review will appear once it has been approved.",
        rating=RatingOut.model_validate(rating),
        average_rating=recipe.average_rating,
        rating_count=recipe.rating_count,
    )


# Average and count cover every rating; the list shows approved ones only
@router.get("/{slug}/ratings", response_model=RatingsSummary)
def get_ratings(
    slug: str,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    recipe = _published_recipe_or_404(db, slug)

    approved = db.query(RecipeRating).options(selectinload(RecipeRating.user)).filter(
        RecipeRating.recipe_id == recipe.id, RecipeRating.is_approved.is_(True)
    ).order_by(RecipeRating.created_at.desc(), RecipeRating.id.desc()).all()

    own = None
    if current_user:
        own = db.query(RecipeRating).filter(
            RecipeRating.recipe_id == recipe.id, RecipeRating.user_id == current_user.id
        ).first()

    return RatingsSummary(
        average_rating=recipe.average_rating,
        rating_count=recipe.rating_count,
        ratings=[RatingOut.model_validate(r) for r in approved],
        user_rating=RatingOut.model_validate(own) if own else None,
    )
