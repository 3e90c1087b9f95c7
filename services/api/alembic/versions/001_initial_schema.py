"""Initial schema with profiles, products, user_preferences, recipes, recipe_ingredients

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MEAL_TYPES = ("breakfast", "lunch", "dinner", "dessert", "snack")
DIFFICULTIES = ("easy", "medium", "hard")
UNITS = ("gram", "kilogram", "milliliter", "liter", "teaspoon", "tablespoon", "cup", "piece")
PREFERENCE_TYPES = ("like", "dislike", "allergen")


def upgrade() -> None:
    meal_type = sa.Enum(*MEAL_TYPES, name="meal_type")
    difficulty = sa.Enum(*DIFFICULTIES, name="recipe_difficulty")
    unit = sa.Enum(*UNITS, name="recipe_unit")
    preference_type = sa.Enum(*PREFERENCE_TYPES, name="preference_type")

    # Profiles table (id = auth user id)
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("ai_requests_count", sa.Integer, nullable=False, server_default="5"),
        sa.Column("disliked_ingredients_note", sa.String(200), nullable=True),
        sa.Column("allergens_note", sa.String(200), nullable=True),
        sa.Column("onboarding_notification_hidden_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("ai_requests_count >= 0", name="ck_profiles_ai_requests_count_non_negative"),
    )

    # Products table
    op.create_table(
        "products",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(200), unique=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # User preferences table
    op.create_table(
        "user_preferences",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("product_id", sa.String(36), sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False),
        sa.Column("preference_type", preference_type, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "product_id", name="uq_user_preferences_user_product"),
    )
    op.create_index("ix_user_preferences_user_id", "user_preferences", ["user_id"])

    # Recipes table
    op.create_table(
        "recipes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("meal_type", meal_type, nullable=False),
        sa.Column("difficulty", difficulty, nullable=False),
        sa.Column("instructions", sa.Text, nullable=False),
        sa.Column("ingredients", sa.Text, nullable=True),
        sa.Column("is_ai_generated", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("length(instructions) <= 5000", name="ck_recipes_instructions_length"),
        sa.CheckConstraint(
            "ingredients IS NULL OR length(ingredients) <= 1000",
            name="ck_recipes_ingredients_length",
        ),
    )
    op.create_index("ix_recipes_user_id", "recipes", ["user_id"])

    # Recipe ingredients table
    op.create_table(
        "recipe_ingredients",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("recipe_id", sa.String(36), sa.ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.String(36), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
        sa.Column("amount", sa.Numeric(10, 3), nullable=False),
        sa.Column("unit", unit, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("recipe_id", "product_id", name="uq_recipe_ingredients_recipe_product"),
        sa.CheckConstraint("amount > 0", name="ck_recipe_ingredients_amount_positive"),
    )
    op.create_index("ix_recipe_ingredients_recipe_id", "recipe_ingredients", ["recipe_id"])


def downgrade() -> None:
    op.drop_index("ix_recipe_ingredients_recipe_id", table_name="recipe_ingredients")
    op.drop_table("recipe_ingredients")
    op.drop_index("ix_recipes_user_id", table_name="recipes")
    op.drop_table("recipes")
    op.drop_index("ix_user_preferences_user_id", table_name="user_preferences")
    op.drop_table("user_preferences")
    op.drop_table("products")
    op.drop_table("profiles")

    bind = op.get_bind()
    for name in ("recipe_unit", "recipe_difficulty", "meal_type", "preference_type"):
        sa.Enum(name=name).drop(bind, checkfirst=True)
