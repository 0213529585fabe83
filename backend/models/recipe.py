from sqlalchemy import (
    Column, Integer, String, Float, Boolean, Text, ForeignKey, DateTime, JSON, Table,
    UniqueConstraint, CheckConstraint, func
)
from sqlalchemy.orm import relationship
from database import Base

# Many-to-many link between recipes and their categories
recipe_category_links = Table(
    "recipe_category_links",
    Base.metadata,
    Column("recipe_id", Integer, ForeignKey("recipes.id", ondelete="CASCADE"), primary_key=True),
    Column("category_id", Integer, ForeignKey("recipe_categories.id", ondelete="CASCADE"), primary_key=True),
)


# Species the recipe is built around (venison, elk, wild boar...)
class GameType(Base):
    __tablename__ = "game_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    image_url = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    recipes = relationship("Recipe", back_populates="game_type")


class RecipeCategory(Base):
    __tablename__ = "recipe_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    image_url = Column(String, nullable=True)
    display_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    recipes = relationship("Recipe", secondary=recipe_category_links, back_populates="categories")


class Recipe(Base):
    __tablename__ = "recipes"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    featured_image_url = Column(String, nullable=True)
    game_type_id = Column(Integer, ForeignKey("game_types.id"), nullable=True, index=True)

    prep_time_minutes = Column(Integer, default=0)
    cook_time_minutes = Column(Integer, default=0)
    total_time_minutes = Column(Integer, default=0)
    servings = Column(Integer, default=1)

    # [{"amount", "unit", "ingredient", "notes"}] and [{"step_number", "text"}]
    ingredients = Column(JSON, nullable=False, default=list)
    instructions = Column(JSON, nullable=False, default=list)
    tips = Column(Text, nullable=True)
    video_url = Column(String, nullable=True)

    is_featured = Column(Boolean, default=False, nullable=False)
    is_published = Column(Boolean, default=True, nullable=False)
    view_count = Column(Integer, default=0, nullable=False)

    # Denormalized by utils.ratings.recalculate_rating
    average_rating = Column(Float, default=0.0, nullable=False)
    rating_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    game_type = relationship("GameType", back_populates="recipes")
    categories = relationship("RecipeCategory", secondary=recipe_category_links, back_populates="recipes")
    ratings = relationship("RecipeRating", back_populates="recipe", cascade="all, delete-orphan")


# One row per (recipe, user). Anonymous rows have user_id NULL and are
# not covered by the unique constraint.
class RecipeRating(Base):
    __tablename__ = "recipe_ratings"

    id = Column(Integer, primary_key=True, index=True)
    recipe_id = Column(Integer, ForeignKey("recipes.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    rating = Column(Integer, CheckConstraint("rating >= 1 AND rating <= 5"), nullable=False)
    review_text = Column(Text, nullable=True)
    is_approved = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    recipe = relationship("Recipe", back_populates="ratings")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("recipe_id", "user_id", name="uq_recipe_rating_recipe_user"),
    )
