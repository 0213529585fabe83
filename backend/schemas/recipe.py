from pydantic import BaseModel, ConfigDict, Field
from typing import Any, List, Optional
from datetime import datetime


class ORMBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class GameTypeOut(ORMBase):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    image_url: Optional[str] = None


class RecipeCategoryOut(ORMBase):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    display_order: int = 0


class RecipeSummary(ORMBase):
    id: int
    title: str
    slug: str
    description: Optional[str] = None
    featured_image_url: Optional[str] = None
    game_type: Optional[GameTypeOut] = None
    prep_time_minutes: Optional[int] = None
    cook_time_minutes: Optional[int] = None
    total_time_minutes: Optional[int] = None
    servings: Optional[int] = None
    is_featured: bool = False
    average_rating: float = 0.0
    rating_count: int = 0


class RecipeDetail(RecipeSummary):
    ingredients: List[Any] = []
    instructions: List[Any] = []
    tips: Optional[str] = None
    video_url: Optional[str] = None
    view_count: int = 0
    categories: List[RecipeCategoryOut] = []
    created_at: Optional[datetime] = None


class RecipePage(BaseModel):
    items: List[RecipeSummary]
    total: int
    page: int
    page_size: int


class RatingCreate(BaseModel):
    rating: int = Field(ge=1, le=5)
    review_text: Optional[str] = Field(default=None, max_length=5000)


class RatingAuthor(ORMBase):
    id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class RatingOut(ORMBase):
    id: int
    recipe_id: int
    user_id: Optional[int] = None
    rating: int
    review_text: Optional[str] = None
    is_approved: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    user: Optional[RatingAuthor] = None


class RatingsSummary(BaseModel):
    average_rating: float
    rating_count: int
    ratings: List[RatingOut]
    user_rating: Optional[RatingOut] = None


class RatingSubmitted(BaseModel):
    message: str
    rating: RatingOut
    average_rating: float
    rating_count: int
