# utils/ratings.py
import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.recipe import Recipe, RecipeRating

logger = logging.getLogger(__name__)


def recalculate_rating(db: Session, recipe: Recipe) -> None:
    """Refresh recipe.average_rating / rating_count from every rating row.

    Unapproved ratings count toward the average even though only approved
    ones are listed publicly.
    """
    count, mean = db.query(func.count(RecipeRating.id), func.avg(RecipeRating.rating)).filter(
        RecipeRating.recipe_id == recipe.id
    ).one()
    recipe.rating_count = count or 0
    recipe.average_rating = round(float(mean), 1) if count else 0.0


def submit_rating(
    db: Session,
    recipe: Recipe,
    user_id: Optional[int],
    rating: int,
    review_text: Optional[str] = None,
) -> RecipeRating:
    """Create or replace the caller's rating and re-aggregate the recipe.

    Edited ratings go back into the moderation queue.
    """
    row = None
    if user_id is not None:
        row = db.query(RecipeRating).filter(
            RecipeRating.recipe_id == recipe.id, RecipeRating.user_id == user_id
        ).first()

    if row is None:
        row = RecipeRating(recipe_id=recipe.id, user_id=user_id)
        db.add(row)
    row.rating = rating
    row.review_text = review_text or None
    row.is_approved = False

    try:
        db.flush()
    except IntegrityError:
        # Another request inserted this user's row first; update that one
        db.rollback()
        row = db.query(RecipeRating).filter(
            RecipeRating.recipe_id == recipe.id, RecipeRating.user_id == user_id
        ).one()
        row.rating = rating
        row.review_text = review_text or None
        row.is_approved = False
        db.flush()

    recalculate_rating(db, recipe)
    db.commit()
    db.refresh(row)
    logger.info("Recipe %s rated %s by user %s (avg %.1f over %d)",
                recipe.slug, rating, user_id, recipe.average_rating, recipe.rating_count)
    return row


def set_approval(db: Session, rating: RecipeRating, approved: bool) -> RecipeRating:
    rating.is_approved = approved
    db.commit()
    db.refresh(rating)
    return rating


def delete_rating(db: Session, rating: RecipeRating) -> None:
    recipe = rating.recipe
    db.delete(rating)
    db.flush()
    recalculate_rating(db, recipe)
    db.commit()
