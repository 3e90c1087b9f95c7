"""Recipe CRUD scoped to the owning user.

Every lookup filters on ``user_id``; a recipe owned by someone else is reported
as ``recipe_not_found``, never as forbidden.

Ingredients come in two shapes:
- free text (stored verbatim on the recipe row)
- a list of {product_id, amount, unit} lines stored in recipe_ingredients

For the normalized shape the recipe row is flushed first and the ingredient
rows second; if the ingredient insert fails the unit of work is rolled back so
the recipe row is discarded with it.
"""

import logging
from dataclasses import dataclass
from typing import Literal, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..constants import (
    LIST_DEFAULT_LIMIT,
    LIST_MAX_LIMIT,
    MAX_INGREDIENTS,
    RECIPE_INGREDIENTS_TEXT_MAX_LENGTH,
    RECIPE_INSTRUCTIONS_MAX_LENGTH,
    UNITS,
)
from ..core.text import LIKE_ESCAPE, contains_pattern
from ..errors import ServiceError
from ..models import Recipe, RecipeIngredient, as_utc, utcnow
from ..schemas import (
    ProductListItemDto,
    RecipeCreateCommand,
    RecipeIngredientCommand,
    RecipeIngredientDto,
    RecipeListItemDto,
    RecipeListResponseDto,
    RecipeResponseDto,
    RecipeUpdateCommand,
)
from .products import ProductServiceError, fetch_products_map

logger = logging.getLogger("healthymeal.recipes")

RecipeServiceErrorCode = Literal[
    "ingredient_limit_exceeded",
    "duplicate_ingredient",
    "product_not_found",
    "instructions_too_long",
    "ingredients_too_long",
    "invalid_ingredient_unit",
    "invalid_ingredient_amount",
    "recipe_not_found",
    "invalid_query_params",
    "internal_error",
]

RECIPE_SORT_MAP = {
    "createdAt.desc": (Recipe.created_at, False),
    "createdAt.asc": (Recipe.created_at, True),
    "name.asc": (Recipe.name, True),
}

# Postgres check_violation / string_data_right_truncation / numeric_value_out_of_range
_CONSTRAINT_PGCODES = {"23514", "22001", "22003"}
_NUMERIC_OVERFLOW_PGCODE = "22003"
_AMOUNT_CHECK_NAME = "ck_recipe_ingredients_amount_positive"


class RecipeServiceError(ServiceError):
    def __init__(self, code: RecipeServiceErrorCode, message: Optional[str] = None, cause=None):
        super().__init__(code, message, cause)


@dataclass
class RecipeListFilters:
    meal_type: Optional[str] = None
    difficulty: Optional[str] = None
    is_ai_generated: Optional[bool] = None
    search: Optional[str] = None
    limit: int = LIST_DEFAULT_LIMIT
    offset: int = 0
    sort: str = "createdAt.desc"


# --- Validation ---

def validate_instruction_length(instructions: str) -> None:
    if len(instructions) > RECIPE_INSTRUCTIONS_MAX_LENGTH:
        raise RecipeServiceError("instructions_too_long")


def validate_ingredients_text(ingredients: str) -> None:
    if len(ingredients) > RECIPE_INGREDIENTS_TEXT_MAX_LENGTH:
        raise RecipeServiceError("ingredients_too_long")


def validate_ingredient_count(ingredients: list[RecipeIngredientCommand]) -> None:
    if len(ingredients) > MAX_INGREDIENTS:
        raise RecipeServiceError("ingredient_limit_exceeded")


def validate_units(ingredients: list[RecipeIngredientCommand]) -> None:
    if any(item.unit not in UNITS for item in ingredients):
        raise RecipeServiceError("invalid_ingredient_unit")


def ensure_unique_ingredients(ingredients: list[RecipeIngredientCommand]) -> None:
    seen = set()
    for item in ingredients:
        key = str(item.product_id)
        if key in seen:
            raise RecipeServiceError("duplicate_ingredient")
        seen.add(key)


def _validate_command(db: Session, command: RecipeCreateCommand) -> None:
    """Business rules checked before anything is written."""
    if isinstance(command.ingredients, str):
        validate_instruction_length(command.instructions)
        validate_ingredients_text(command.ingredients)
        return

    validate_ingredient_count(command.ingredients)
    validate_instruction_length(command.instructions)
    validate_units(command.ingredients)
    ensure_unique_ingredients(command.ingredients)

    product_ids = [str(item.product_id) for item in command.ingredients]
    try:
        products = fetch_products_map(db, product_ids)
    except ProductServiceError as e:
        raise RecipeServiceError("internal_error", "Failed to resolve products.", e) from e
    if len(products) != len(product_ids):
        raise RecipeServiceError("product_not_found", "One or more referenced products do not exist.")


# --- Error mapping ---

def _is_constraint_violation(error: SQLAlchemyError) -> bool:
    orig = getattr(error, "orig", None)
    if getattr(orig, "pgcode", None) in _CONSTRAINT_PGCODES:
        return True
    return isinstance(error, IntegrityError) and "CHECK constraint" in str(orig)


def _map_recipe_write_error(error: SQLAlchemyError) -> RecipeServiceError:
    if _is_constraint_violation(error):
        return RecipeServiceError("instructions_too_long", cause=error)
    return RecipeServiceError("internal_error", "Failed to store recipe.", error)


def _is_amount_violation(error: SQLAlchemyError) -> bool:
    orig = getattr(error, "orig", None)
    if getattr(orig, "pgcode", None) == _NUMERIC_OVERFLOW_PGCODE:
        return True
    return _AMOUNT_CHECK_NAME in str(orig)


def _map_ingredient_write_error(error: SQLAlchemyError) -> RecipeServiceError:
    if _is_amount_violation(error):
        return RecipeServiceError("invalid_ingredient_amount", cause=error)
    if _is_constraint_violation(error):
        return RecipeServiceError("invalid_ingredient_unit", cause=error)
    return RecipeServiceError("internal_error", "Failed to store recipe ingredients.", error)


# --- Mapping ---

def _to_response(recipe: Recipe) -> RecipeResponseDto:
    if recipe.ingredients is not None:
        ingredients = recipe.ingredients
    else:
        ingredients = [
            RecipeIngredientDto(
                id=item.id,
                amount=float(item.amount),
                unit=item.unit,
                product=ProductListItemDto(id=item.product.id, name=item.product.name),
            )
            for item in recipe.ingredient_items
        ]

    return RecipeResponseDto(
        id=recipe.id,
        user_id=recipe.user_id,
        name=recipe.name,
        meal_type=recipe.meal_type,
        difficulty=recipe.difficulty,
        instructions=recipe.instructions,
        ingredients=ingredients,
        is_ai_generated=recipe.is_ai_generated,
        created_at=as_utc(recipe.created_at),
        updated_at=as_utc(recipe.updated_at),
    )


def _to_list_item(recipe: Recipe) -> RecipeListItemDto:
    return RecipeListItemDto(
        id=recipe.id,
        name=recipe.name,
        meal_type=recipe.meal_type,
        difficulty=recipe.difficulty,
        is_ai_generated=recipe.is_ai_generated,
        created_at=as_utc(recipe.created_at),
        updated_at=as_utc(recipe.updated_at),
    )


# --- Persistence helpers ---

def _owned_recipe_query(user_id: str, recipe_id: str):
    return (
        select(Recipe)
        .options(selectinload(Recipe.ingredient_items).selectinload(RecipeIngredient.product))
        .where(Recipe.id == recipe_id, Recipe.user_id == user_id)
    )


def _load_owned_recipe(db: Session, user_id: str, recipe_id: str) -> Recipe:
    try:
        recipe = db.scalars(_owned_recipe_query(user_id, recipe_id)).first()
    except SQLAlchemyError as e:
        raise RecipeServiceError("internal_error", "Failed to load recipe.", e) from e
    if recipe is None:
        raise RecipeServiceError("recipe_not_found", "Recipe not found.")
    return recipe


def _build_ingredient_rows(recipe_id: str, ingredients: list[RecipeIngredientCommand]) -> list[RecipeIngredient]:
    return [
        RecipeIngredient(
            recipe_id=recipe_id,
            product_id=str(item.product_id),
            position=position,
            amount=item.amount,
            unit=item.unit,
        )
        for position, item in enumerate(ingredients)
    ]


def _apply_fields(recipe: Recipe, command: RecipeCreateCommand) -> None:
    recipe.name = command.name
    recipe.meal_type = command.meal_type
    recipe.difficulty = command.difficulty
    recipe.instructions = command.instructions
    recipe.is_ai_generated = command.is_ai_generated
    recipe.ingredients = command.ingredients if isinstance(command.ingredients, str) else None


def _write_ingredients(db: Session, recipe: Recipe, command: RecipeCreateCommand) -> None:
    """Insert normalized rows for ``recipe``; on failure the whole unit of work is rolled back."""
    if isinstance(command.ingredients, str):
        return
    recipe_id = recipe.id
    try:
        db.add_all(_build_ingredient_rows(recipe_id, command.ingredients))
        db.flush()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Ingredient insert failed for recipe %s, discarding recipe row", recipe_id)
        raise _map_ingredient_write_error(e) from e


def _commit_and_reload(db: Session, user_id: str, recipe_id: str) -> RecipeResponseDto:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise _map_recipe_write_error(e) from e
    db.expire_all()
    return _to_response(_load_owned_recipe(db, user_id, recipe_id))


# --- Operations ---

def create_recipe(db: Session, user_id: str, command: RecipeCreateCommand) -> RecipeResponseDto:
    _validate_command(db, command)

    now = utcnow()
    recipe = Recipe(user_id=user_id, created_at=now, updated_at=now)
    _apply_fields(recipe, command)
    db.add(recipe)

    try:
        db.flush()
    except SQLAlchemyError as e:
        db.rollback()
        raise _map_recipe_write_error(e) from e

    recipe_id = recipe.id
    _write_ingredients(db, recipe, command)
    result = _commit_and_reload(db, user_id, recipe_id)
    logger.info("Created recipe %s for user %s", recipe_id, user_id)
    return result


def update_recipe(
    db: Session, user_id: str, recipe_id: str, command: RecipeUpdateCommand
) -> RecipeResponseDto:
    """Full replacement of the recipe, including its ingredients."""
    recipe = _load_owned_recipe(db, user_id, recipe_id)
    _validate_command(db, command)

    _apply_fields(recipe, command)
    recipe.updated_at = utcnow()
    # Old rows must be gone before new ones hit the (recipe_id, product_id) unique key
    recipe.ingredient_items.clear()

    try:
        db.flush()
    except SQLAlchemyError as e:
        db.rollback()
        raise _map_recipe_write_error(e) from e

    _write_ingredients(db, recipe, command)
    return _commit_and_reload(db, user_id, recipe_id)


def get_recipe(db: Session, user_id: str, recipe_id: str) -> RecipeResponseDto:
    return _to_response(_load_owned_recipe(db, user_id, recipe_id))


def list_recipes(db: Session, user_id: str, filters: RecipeListFilters) -> RecipeListResponseDto:
    if filters.sort not in RECIPE_SORT_MAP:
        raise RecipeServiceError("invalid_query_params", "Unsupported sort parameter.")
    if not 1 <= filters.limit <= LIST_MAX_LIMIT or filters.offset < 0:
        raise RecipeServiceError("invalid_query_params", "Pagination values are out of range.")

    conditions = [Recipe.user_id == user_id]
    if filters.meal_type:
        conditions.append(Recipe.meal_type == filters.meal_type)
    if filters.difficulty:
        conditions.append(Recipe.difficulty == filters.difficulty)
    if filters.is_ai_generated is not None:
        conditions.append(Recipe.is_ai_generated == filters.is_ai_generated)
    if filters.search:
        pattern = contains_pattern(filters.search)
        conditions.append(
            or_(
                Recipe.name.ilike(pattern, escape=LIKE_ESCAPE),
                Recipe.instructions.ilike(pattern, escape=LIKE_ESCAPE),
            )
        )

    column, ascending = RECIPE_SORT_MAP[filters.sort]
    # id breaks ties so consecutive pages never overlap or skip rows
    query = (
        select(Recipe)
        .where(*conditions)
        .order_by(column.asc() if ascending else column.desc(), Recipe.id.asc())
        .offset(filters.offset)
        .limit(filters.limit)
    )
    count_query = select(func.count()).select_from(Recipe).where(*conditions)

    try:
        rows = db.scalars(query).all()
        total = db.scalar(count_query) or 0
    except SQLAlchemyError as e:
        raise RecipeServiceError("internal_error", "Failed to list recipes.", e) from e

    return RecipeListResponseDto(
        items=[_to_list_item(r) for r in rows],
        total=total,
        limit=filters.limit,
        offset=filters.offset,
    )


def delete_recipe(db: Session, user_id: str, recipe_id: str) -> None:
    recipe = _load_owned_recipe(db, user_id, recipe_id)
    db.delete(recipe)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise RecipeServiceError("internal_error", "Failed to delete recipe.", e) from e
    logger.info("Deleted recipe %s for user %s", recipe_id, user_id)
