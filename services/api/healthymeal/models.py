"""SQLAlchemy ORM models for HealthyMeal.

Tables:
- profiles: one row per auth user (AI quota counter, preference notes, onboarding dismissal)
- products: shared ingredient catalog
- user_preferences: like/dislike/allergen tags linking a user to a product
- recipes: user-owned recipes (free-text ingredients live on the row)
- recipe_ingredients: normalized ingredient lines referencing products
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy import (
    String,
    DateTime,
    Text,
    Integer,
    Boolean,
    Numeric,
    ForeignKey,
    Index,
    CheckConstraint,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .constants import (
    DIFFICULTIES,
    MEAL_TYPES,
    PREFERENCE_TYPES,
    UNITS,
    RECIPE_INSTRUCTIONS_MAX_LENGTH,
    RECIPE_INGREDIENTS_TEXT_MAX_LENGTH,
    RECIPE_NAME_MAX_LENGTH,
    PREFERENCE_NOTE_MAX_LENGTH,
)
from .db import Base
from .settings import settings


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


meal_type_enum = sa.Enum(*MEAL_TYPES, name="meal_type")
difficulty_enum = sa.Enum(*DIFFICULTIES, name="recipe_difficulty")
unit_enum = sa.Enum(*UNITS, name="recipe_unit")
preference_type_enum = sa.Enum(*PREFERENCE_TYPES, name="preference_type")


class Profile(Base):
    """Per-user profile. The id is the auth provider's user id."""
    __tablename__ = "profiles"
    __table_args__ = (
        CheckConstraint("ai_requests_count >= 0", name="ck_profiles_ai_requests_count_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    ai_requests_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=lambda: settings.ai_default_quota
    )
    disliked_ingredients_note: Mapped[Optional[str]] = mapped_column(
        String(PREFERENCE_NOTE_MAX_LENGTH), nullable=True
    )
    allergens_note: Mapped[Optional[str]] = mapped_column(
        String(PREFERENCE_NOTE_MAX_LENGTH), nullable=True
    )
    onboarding_notification_hidden_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class Product(Base):
    """Shared catalog entry referenced by ingredients and preferences."""
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class UserPreference(Base):
    __tablename__ = "user_preferences"
    __table_args__ = (
        Index("ix_user_preferences_user_id", "user_id"),
        UniqueConstraint("user_id", "product_id", name="uq_user_preferences_user_product"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    preference_type: Mapped[str] = mapped_column(preference_type_enum, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    product: Mapped["Product"] = relationship("Product")


class Recipe(Base):
    """User-owned recipe. Every query filters on user_id."""
    __tablename__ = "recipes"
    __table_args__ = (
        Index("ix_recipes_user_id", "user_id"),
        CheckConstraint(
            f"length(instructions) <= {RECIPE_INSTRUCTIONS_MAX_LENGTH}",
            name="ck_recipes_instructions_length",
        ),
        CheckConstraint(
            f"ingredients IS NULL OR length(ingredients) <= {RECIPE_INGREDIENTS_TEXT_MAX_LENGTH}",
            name="ck_recipes_ingredients_length",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)

    name: Mapped[str] = mapped_column(String(RECIPE_NAME_MAX_LENGTH), nullable=False)
    meal_type: Mapped[str] = mapped_column(meal_type_enum, nullable=False)
    difficulty: Mapped[str] = mapped_column(difficulty_enum, nullable=False)
    instructions: Mapped[str] = mapped_column(Text, nullable=False)

    # Free-text variant; NULL when the recipe uses normalized ingredient rows
    ingredients: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    is_ai_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    ingredient_items: Mapped[list["RecipeIngredient"]] = relationship(
        "RecipeIngredient",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeIngredient.position",
    )


class RecipeIngredient(Base):
    """Normalized ingredient line: amount + unit of a catalog product."""
    __tablename__ = "recipe_ingredients"
    __table_args__ = (
        Index("ix_recipe_ingredients_recipe_id", "recipe_id"),
        UniqueConstraint("recipe_id", "product_id", name="uq_recipe_ingredients_recipe_product"),
        CheckConstraint("amount > 0", name="ck_recipe_ingredients_amount_positive"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("products.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 3), nullable=False)
    unit: Mapped[str] = mapped_column(unit_enum, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    recipe: Mapped["Recipe"] = relationship("Recipe", back_populates="ingredient_items")
    product: Mapped["Product"] = relationship("Product")
