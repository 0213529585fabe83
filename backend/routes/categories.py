# backend/routes/categories.py
from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from models.catalog import ProductCategory
from models.recipe import GameType, RecipeCategory
from schemas.product import ProductCategoryOut
from schemas.recipe import GameTypeOut, RecipeCategoryOut

router = APIRouter(tags=["Categories"])


@router.get("/categories/recipes", response_model=List[RecipeCategoryOut])
def list_recipe_categories(db: Session = Depends(get_db)):
    return db.query(RecipeCategory).filter(RecipeCategory.is_active.is_(True)).order_by(
        RecipeCategory.display_order, RecipeCategory.name
    ).all()


@router.get("/categories/products", response_model=List[ProductCategoryOut])
def list_product_categories(db: Session = Depends(get_db)):
    return db.query(ProductCategory).filter(ProductCategory.is_active.is_(True)).order_by(
        ProductCategory.display_order, ProductCategory.name
    ).all()


@router.get("/game-types", response_model=List[GameTypeOut])
def list_game_types(db: Session = Depends(get_db)):
    return db.query(GameType).filter(GameType.is_active.is_(True)).order_by(GameType.name).all()
