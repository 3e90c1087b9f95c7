"""Pydantic schemas for the HealthyMeal API.

Request commands accept camelCase keys and reject unknown fields; response DTOs
serialise camelCase. Models cover:
- Auth
- Profile / onboarding notice
- Products / preferences
- Recipes (free-text or normalized ingredients)
- AI recipe generation
"""

from datetime import datetime
from typing import Annotated, Any, Optional, Union
from uuid import UUID

from pydantic import (
    AwareDatetime,
    BaseModel,
    ConfigDict,
    Discriminator,
    EmailStr,
    Field,
    Tag,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .constants import (
    Difficulty,
    MealType,
    PreferenceType,
    GENERATION_PROMPT_MAX_LENGTH,
    INGREDIENT_AMOUNT_DECIMALS,
    INGREDIENT_AMOUNT_MAX,
    INGREDIENTS_LIST_TAG,
    INGREDIENTS_TEXT_TAG,
    PREFERENCE_NOTE_MAX_LENGTH,
    RECIPE_INGREDIENTS_TEXT_MAX_LENGTH,
    RECIPE_INSTRUCTIONS_MAX_LENGTH,
    RECIPE_NAME_MAX_LENGTH,
)


class CommandModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class DtoModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# --- Auth ---

class LoginCommand(CommandModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RegisterCommand(CommandModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    confirm_password: Optional[str] = None

    @model_validator(mode="after")
    def passwords_match(self):
        if self.confirm_password is not None and self.confirm_password != self.password:
            raise ValueError("Passwords do not match.")
        return self


class AuthUserDto(DtoModel):
    id: str
    email: str


class AuthResponseDto(DtoModel):
    user: AuthUserDto


# --- Products ---

class ProductListItemDto(DtoModel):
    id: str
    name: str


class ProductListResponseDto(DtoModel):
    items: list[ProductListItemDto]
    total: int
    limit: int
    offset: int


# --- Preferences ---

class PreferenceListItemDto(DtoModel):
    id: str
    preference_type: PreferenceType
    created_at: datetime
    product: ProductListItemDto


class PreferenceListResponseDto(DtoModel):
    items: list[PreferenceListItemDto]


# --- Profile ---

class ProfileResponseDto(DtoModel):
    id: str
    ai_requests_count: int
    disliked_ingredients_note: Optional[str] = None
    allergens_note: Optional[str] = None
    onboarding_notification_hidden_until: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    likes_count: int = 0
    dislikes_count: int = 0
    allergens_count: int = 0


class ProfileUpdateCommand(CommandModel):
    """Partial update; only keys present in the request body are applied."""
    disliked_ingredients_note: Optional[str] = Field(None, max_length=PREFERENCE_NOTE_MAX_LENGTH)
    allergens_note: Optional[str] = Field(None, max_length=PREFERENCE_NOTE_MAX_LENGTH)
    onboarding_notification_hidden_until: Optional[AwareDatetime] = None

    @field_validator("disliked_ingredients_note", "allergens_note")
    @classmethod
    def normalize_note(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        trimmed = value.strip()
        return trimmed or None

    @model_validator(mode="after")
    def require_any_field(self):
        if not self.model_fields_set:
            raise ValueError("At least one profile field must be provided.")
        return self


class OnboardingNoticeResponseDto(DtoModel):
    show: bool
    dismissible_until: Optional[datetime] = None


class OnboardingNoticeDismissResponseDto(DtoModel):
    hidden_until: datetime


# --- Recipes ---

class RecipeIngredientCommand(CommandModel):
    product_id: UUID
    amount: float = Field(..., gt=0, le=INGREDIENT_AMOUNT_MAX, strict=True)
    # Checked against the unit enum by the recipe service
    unit: str

    @field_validator("amount")
    @classmethod
    def amount_scale(cls, value: float) -> float:
        if round(value, INGREDIENT_AMOUNT_DECIMALS) != value:
            raise ValueError(f"amount must have at most {INGREDIENT_AMOUNT_DECIMALS} decimal places")
        return value


def _ingredients_variant(value: Any) -> str:
    return INGREDIENTS_LIST_TAG if isinstance(value, list) else INGREDIENTS_TEXT_TAG


RecipeIngredients = Annotated[
    Union[
        Annotated[str, Tag(INGREDIENTS_TEXT_TAG)],
        Annotated[list[RecipeIngredientCommand], Tag(INGREDIENTS_LIST_TAG)],
    ],
    Discriminator(_ingredients_variant),
]


class RecipeCreateCommand(CommandModel):
    name: str = Field(..., min_length=1, max_length=RECIPE_NAME_MAX_LENGTH)
    meal_type: MealType
    difficulty: Difficulty
    # Upper bounds for instructions/ingredients are business rules enforced by the service
    instructions: str = Field(..., min_length=1)
    ingredients: RecipeIngredients
    is_ai_generated: bool = Field(False, strict=True)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must not be empty")
        return value

    @field_validator("ingredients")
    @classmethod
    def ingredients_not_empty(cls, value):
        if isinstance(value, str) and not value.strip():
            raise ValueError("ingredients must not be empty")
        if isinstance(value, list) and not value:
            raise ValueError("ingredients must include at least one item")
        return value


RecipeUpdateCommand = RecipeCreateCommand


class RecipeIngredientDto(DtoModel):
    id: str
    amount: float
    unit: str
    product: ProductListItemDto


class RecipeResponseDto(DtoModel):
    id: str
    user_id: str
    name: str
    meal_type: MealType
    difficulty: Difficulty
    instructions: str
    ingredients: Union[str, list[RecipeIngredientDto]]
    is_ai_generated: bool
    created_at: datetime
    updated_at: datetime


class RecipeListItemDto(DtoModel):
    id: str
    name: str
    meal_type: MealType
    difficulty: Difficulty
    is_ai_generated: bool
    created_at: datetime
    updated_at: datetime


class RecipeListResponseDto(DtoModel):
    items: list[RecipeListItemDto]
    total: int
    limit: int
    offset: int


# --- AI generation ---

class RecipeDraft(DtoModel):
    """Recipe proposed by the model; also the JSON schema handed to the LLM tool call."""
    model_config = ConfigDict(title="recipe_draft")

    name: str = Field(
        ..., min_length=1, max_length=RECIPE_NAME_MAX_LENGTH,
        description="Short recipe name.",
    )
    meal_type: MealType = Field(..., description="One of breakfast, lunch, dinner, dessert, snack.")
    difficulty: Difficulty = Field(..., description="One of easy, medium, hard.")
    instructions: str = Field(
        ..., min_length=1, max_length=RECIPE_INSTRUCTIONS_MAX_LENGTH,
        description="Step-by-step preparation instructions.",
    )
    ingredients: str = Field(
        ..., min_length=1, max_length=RECIPE_INGREDIENTS_TEXT_MAX_LENGTH,
        description="One ingredient per line in the form: name amount unit.",
    )


class AiRecipeGenerationCommand(CommandModel):
    """Either a ready prompt or the generation form fields."""
    prompt: Optional[str] = Field(None, max_length=GENERATION_PROMPT_MAX_LENGTH)
    meal_type: Optional[MealType] = None
    main_ingredient: Optional[str] = Field(None, max_length=100)
    difficulty: Optional[Difficulty] = None
    model: Optional[str] = None

    @field_validator("prompt")
    @classmethod
    def strip_prompt(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if not value:
            raise ValueError("prompt cannot be empty")
        return value

    @model_validator(mode="after")
    def prompt_or_form(self):
        if self.prompt is None and self.meal_type is None:
            raise ValueError("Either prompt or mealType is required.")
        return self


class AiRecipeGenerationResponseDto(DtoModel):
    success: bool = True
    data: RecipeDraft
    ai_requests_remaining: int
