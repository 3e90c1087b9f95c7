"""Domain enumerations and limits shared by models, schemas and services."""

from typing import Literal, get_args

MealType = Literal["breakfast", "lunch", "dinner", "dessert", "snack"]
Difficulty = Literal["easy", "medium", "hard"]
RecipeUnit = Literal["gram", "kilogram", "milliliter", "liter", "teaspoon", "tablespoon", "cup", "piece"]
PreferenceType = Literal["like", "dislike", "allergen"]
RecipeSort = Literal["createdAt.desc", "createdAt.asc", "name.asc"]
ProductSort = Literal["name.asc", "name.desc"]

MEAL_TYPES: tuple[str, ...] = get_args(MealType)
DIFFICULTIES: tuple[str, ...] = get_args(Difficulty)
UNITS: tuple[str, ...] = get_args(RecipeUnit)
PREFERENCE_TYPES: tuple[str, ...] = get_args(PreferenceType)

RECIPE_NAME_MAX_LENGTH = 50
RECIPE_INSTRUCTIONS_MAX_LENGTH = 5000
RECIPE_INGREDIENTS_TEXT_MAX_LENGTH = 1000
MAX_INGREDIENTS = 50

PREFERENCE_NOTE_MAX_LENGTH = 200

SEARCH_MAX_LENGTH = 50
LIST_DEFAULT_LIMIT = 20
LIST_MAX_LIMIT = 50

GENERATION_PROMPT_MAX_LENGTH = 1000

# Numeric(10, 3) on recipe_ingredients.amount
INGREDIENT_AMOUNT_MAX = 9_999_999.999
INGREDIENT_AMOUNT_DECIMALS = 3

# Tags of the recipe ``ingredients`` union; stripped from validation error paths
INGREDIENTS_TEXT_TAG = "ingredients_text"
INGREDIENTS_LIST_TAG = "ingredients_list"
INGREDIENTS_VARIANT_TAGS = frozenset({INGREDIENTS_TEXT_TAG, INGREDIENTS_LIST_TAG})
