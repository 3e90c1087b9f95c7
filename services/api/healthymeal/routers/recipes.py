"""Recipes API router.

Endpoints:
- GET /api/recipes - List the caller's recipes (filters, search, sort, pagination)
- POST /api/recipes - Create recipe (optional Idempotency-Key)
- GET /api/recipes/{id} - Get recipe
- PUT /api/recipes/{id} - Replace recipe
- DELETE /api/recipes/{id} - Delete recipe
- POST /api/recipes/generate - Generate a recipe draft with the LLM (quota + rate limited)
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from ..constants import LIST_DEFAULT_LIMIT, Difficulty, MealType, RecipeSort, SEARCH_MAX_LENGTH
from ..core.ai_client import (
    InvalidJsonResponseError,
    NetworkError,
    OpenRouterApiError,
    OpenRouterClient,
    SchemaValidationError,
)
from ..core.text import normalize_search
from ..db import get_db
from ..deps import CurrentUser, get_ai_client, get_current_user
from ..errors import ApiError, to_api_error
from ..infra.idempotency import idempotency_clear_key, idempotency_precheck, idempotency_store_result
from ..schemas import (
    AiRecipeGenerationCommand,
    AiRecipeGenerationResponseDto,
    RecipeCreateCommand,
    RecipeListResponseDto,
    RecipeResponseDto,
    RecipeUpdateCommand,
)
from ..services import recipes as recipe_service
from ..services.generation import generate_recipe_draft
from ..services.profile import ProfileServiceError
from ..settings import settings

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)
logger = logging.getLogger("healthymeal.recipes")

ERROR_STATUS = {
    "invalid_payload": 400,
    "invalid_query_params": 400,
    "invalid_recipe_id": 400,
    "invalid_ingredient_unit": 400,
    "invalid_ingredient_amount": 400,
    "duplicate_ingredient": 400,
    "product_not_found": 404,
    "recipe_not_found": 404,
    "profile_not_found": 404,
    "ingredient_limit_exceeded": 422,
    "instructions_too_long": 422,
    "ingredients_too_long": 422,
    "quota_exceeded": 429,
    "internal_error": 500,
}

ERROR_MESSAGES = {
    "invalid_payload": "Submitted payload is invalid.",
    "invalid_query_params": "Query parameters are invalid.",
    "invalid_recipe_id": "Recipe ID must be a valid UUID.",
    "invalid_ingredient_unit": "One or more ingredients use an unsupported unit.",
    "invalid_ingredient_amount": "One or more ingredient amounts are out of range.",
    "duplicate_ingredient": "Each ingredient must reference a unique product.",
    "product_not_found": "One or more referenced products were not found.",
    "recipe_not_found": "Recipe not found.",
    "profile_not_found": "User profile not found.",
    "ingredient_limit_exceeded": "The number of ingredients exceeds the allowed limit.",
    "instructions_too_long": "Instructions exceed the maximum allowed length.",
    "ingredients_too_long": "Ingredients exceed the maximum allowed length.",
    "quota_exceeded": "AI generation limit reached.",
    "internal_error": "Failed to process recipe request due to an internal error.",
}


def _parse_recipe_id(recipe_id: str) -> str:
    try:
        return str(uuid.UUID(recipe_id))
    except ValueError:
        raise ApiError("invalid_recipe_id", ERROR_MESSAGES["invalid_recipe_id"], 400)


def _service_error(err, route: str) -> ApiError:
    api_error = to_api_error(err, ERROR_STATUS, ERROR_MESSAGES)
    if api_error.status_code >= 500:
        logger.error("%s: service error %s: %s", route, err.code, err.cause or err)
    else:
        logger.warning("%s: service error %s: %s", route, err.code, err.message)
    return api_error


@router.get("/recipes", response_model=RecipeListResponseDto)
def list_recipes(
    meal_type: Optional[MealType] = Query(None, alias="mealType"),
    difficulty: Optional[Difficulty] = Query(None),
    is_ai_generated: Optional[bool] = Query(None, alias="isAiGenerated"),
    search: Optional[str] = Query(None),
    sort: RecipeSort = Query("createdAt.desc"),
    limit: int = Query(LIST_DEFAULT_LIMIT),
    offset: int = Query(0),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """List the caller's recipes; `total` counts every match, not just the page."""
    try:
        search = normalize_search(search, SEARCH_MAX_LENGTH)
    except ValueError as e:
        raise ApiError("invalid_query_params", str(e), 400)

    filters = recipe_service.RecipeListFilters(
        meal_type=meal_type,
        difficulty=difficulty,
        is_ai_generated=is_ai_generated,
        search=search,
        limit=limit,
        offset=offset,
        sort=sort,
    )
    try:
        return recipe_service.list_recipes(db, user.id, filters)
    except recipe_service.RecipeServiceError as e:
        raise _service_error(e, "GET /api/recipes")


@router.post("/recipes", response_model=RecipeResponseDto, status_code=201)
async def create_recipe(
    request: Request,
    body: RecipeCreateCommand,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    pre = await idempotency_precheck(request, user_id=user.id, route_key="recipe_create")
    if isinstance(pre, JSONResponse):
        return pre
    redis_key, req_hash = pre if pre else (None, None)

    try:
        recipe = recipe_service.create_recipe(db, user.id, body)
    except recipe_service.RecipeServiceError as e:
        await idempotency_clear_key(redis_key)
        raise _service_error(e, "POST /api/recipes")
    except Exception:
        await idempotency_clear_key(redis_key)
        raise

    if redis_key:
        await idempotency_store_result(
            redis_key, req_hash, status=201, body=recipe.model_dump(mode="json", by_alias=True)
        )
    return recipe


@router.get("/recipes/{recipe_id}", response_model=RecipeResponseDto)
def get_recipe(
    recipe_id: str,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    recipe_id = _parse_recipe_id(recipe_id)
    try:
        return recipe_service.get_recipe(db, user.id, recipe_id)
    except recipe_service.RecipeServiceError as e:
        raise _service_error(e, "GET /api/recipes/{id}")


@router.put("/recipes/{recipe_id}", response_model=RecipeResponseDto)
def update_recipe(
    recipe_id: str,
    body: RecipeUpdateCommand,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Full replacement; normalized ingredient lines are replaced as a set."""
    recipe_id = _parse_recipe_id(recipe_id)
    try:
        return recipe_service.update_recipe(db, user.id, recipe_id, body)
    except recipe_service.RecipeServiceError as e:
        raise _service_error(e, "PUT /api/recipes/{id}")


@router.delete("/recipes/{recipe_id}", status_code=204)
def delete_recipe(
    recipe_id: str,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    recipe_id = _parse_recipe_id(recipe_id)
    try:
        recipe_service.delete_recipe(db, user.id, recipe_id)
    except recipe_service.RecipeServiceError as e:
        raise _service_error(e, "DELETE /api/recipes/{id}")
    return Response(status_code=204)


@router.post("/recipes/generate", response_model=AiRecipeGenerationResponseDto)
@limiter.limit(settings.ai_generate_rate_limit)
async def generate_recipe(
    request: Request,
    body: AiRecipeGenerationCommand,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    client: Optional[OpenRouterClient] = Depends(get_ai_client),
):
    """Generate a recipe draft; one unit of quota is charged only on success."""
    if client is None:
        raise ApiError("ai_unavailable", "AI recipe generation is not configured.", 503)

    try:
        return await generate_recipe_draft(db, user.id, body, client)
    except ProfileServiceError as e:
        raise _service_error(e, "POST /api/recipes/generate")
    except SchemaValidationError as e:
        logger.warning("Generated recipe failed schema validation: %s", e.issues)
        raise ApiError(
            "schema_validation_failed",
            "Generated recipe does not match expected schema.",
            422,
            details=e.issues,
        )
    except OpenRouterApiError as e:
        logger.error("OpenRouter API error %s: %s", e.status, e.details)
        raise ApiError(
            "ai_api_error",
            f"AI provider error: {e}",
            502 if e.status >= 500 else 400,
        )
    except InvalidJsonResponseError as e:
        logger.error("Invalid AI response: %s", e)
        raise ApiError("ai_invalid_response", "Failed to parse AI response as valid JSON.", 502)
    except NetworkError as e:
        logger.error("AI provider unreachable: %s", e)
        raise ApiError("ai_network_error", "Network error while communicating with AI service.", 503)
