"""AI recipe generation: prompt composition and the quota-guarded generate flow."""

import logging

from sqlalchemy.orm import Session

from ..constants import DIFFICULTIES, MEAL_TYPES, RECIPE_INSTRUCTIONS_MAX_LENGTH
from ..core.ai_client import OpenRouterClient
from ..schemas import (
    AiRecipeGenerationCommand,
    AiRecipeGenerationResponseDto,
    ProfileResponseDto,
    RecipeDraft,
)
from .profile import ProfileServiceError, decrement_ai_requests_count, get_profile

logger = logging.getLogger("healthymeal.generation")


def build_generation_prompt(command: AiRecipeGenerationCommand, profile: ProfileResponseDto) -> str:
    if command.prompt:
        return command.prompt

    main_ingredient = (command.main_ingredient or "").strip() or "any main ingredient"
    difficulty = command.difficulty or "any"

    lines = [
        "You are an experienced chef. "
        f"Your task is to create a {command.meal_type} recipe.",
    ]
    if profile.disliked_ingredients_note:
        lines.append(
            "Make sure the recipe does not contain ingredients I dislike, namely: "
            f"{profile.disliked_ingredients_note}."
        )
    if profile.allergens_note:
        lines.append(f"The recipe must not contain these allergens: {profile.allergens_note}.")
    lines.extend([
        f"The main ingredient of the recipe should be: {main_ingredient}.",
        f"The difficulty of the recipe should be {difficulty}.",
        f"Write instructions of up to {RECIPE_INSTRUCTIONS_MAX_LENGTH} characters.",
        "List ingredients in the form: ingredient_name amount unit, e.g. Milk 1 cup. "
        "Put each ingredient on its own line.",
        f"The meal type must be one of: {', '.join(MEAL_TYPES)}.",
        f"The difficulty must be one of: {', '.join(DIFFICULTIES)}.",
    ])
    return "\n".join(lines)


async def generate_recipe_draft(
    db: Session,
    user_id: str,
    command: AiRecipeGenerationCommand,
    client: OpenRouterClient,
) -> AiRecipeGenerationResponseDto:
    """Generate a draft and charge one unit of quota on success.

    An exhausted quota is refused before the provider is called; provider
    failures leave the counter untouched.
    """
    profile = get_profile(db, user_id)
    if profile.ai_requests_count <= 0:
        raise ProfileServiceError("quota_exceeded", "AI generation limit reached.")

    prompt = build_generation_prompt(command, profile)
    draft = await client.get_structured_response(prompt, RecipeDraft, model=command.model)

    updated = decrement_ai_requests_count(db, user_id)
    logger.info("Generated recipe draft for user %s (%d requests left)", user_id, updated.ai_requests_count)
    return AiRecipeGenerationResponseDto(data=draft, ai_requests_remaining=updated.ai_requests_count)
