"""Profile, AI quota counter and onboarding notice.

The quota decrement is optimistic: read the counter, refuse when it is already
exhausted, then update only ``WHERE ai_requests_count > 0``. The conditional
update keeps the counter from going negative; it does not serialize two
concurrent generations from the same user.
"""

import logging
from datetime import datetime, timedelta
from typing import Literal, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import ServiceError
from ..models import Profile, UserPreference, as_utc, utcnow
from ..schemas import (
    OnboardingNoticeDismissResponseDto,
    OnboardingNoticeResponseDto,
    ProfileResponseDto,
    ProfileUpdateCommand,
)
from ..settings import settings

logger = logging.getLogger("healthymeal.profile")

ProfileServiceErrorCode = Literal["profile_not_found", "quota_exceeded", "invalid_input", "internal_error"]


class ProfileServiceError(ServiceError):
    def __init__(self, code: ProfileServiceErrorCode, message: Optional[str] = None, cause=None):
        super().__init__(code, message, cause)


def _require_user_id(user_id: str) -> None:
    if not user_id or not isinstance(user_id, str):
        raise ProfileServiceError("invalid_input", "Invalid user ID")


def _load_profile(db: Session, user_id: str) -> Profile:
    try:
        profile = db.get(Profile, user_id)
    except SQLAlchemyError as e:
        raise ProfileServiceError("internal_error", "Failed to load profile.", e) from e
    if profile is None:
        raise ProfileServiceError("profile_not_found", "Profile not found for user")
    return profile


def _preference_counts(db: Session, user_id: str) -> dict[str, int]:
    try:
        rows = db.execute(
            select(UserPreference.preference_type, func.count())
            .where(UserPreference.user_id == user_id)
            .group_by(UserPreference.preference_type)
        ).all()
    except SQLAlchemyError as e:
        # Counts are best-effort; the profile is still returned
        logger.warning("Failed to count preferences for %s: %s", user_id, e)
        return {}
    return {preference_type: count for preference_type, count in rows}


def _to_dto(db: Session, profile: Profile) -> ProfileResponseDto:
    counts = _preference_counts(db, profile.id)
    return ProfileResponseDto(
        id=profile.id,
        ai_requests_count=profile.ai_requests_count,
        disliked_ingredients_note=profile.disliked_ingredients_note,
        allergens_note=profile.allergens_note,
        onboarding_notification_hidden_until=as_utc(profile.onboarding_notification_hidden_until),
        created_at=as_utc(profile.created_at),
        updated_at=as_utc(profile.updated_at),
        likes_count=counts.get("like", 0),
        dislikes_count=counts.get("dislike", 0),
        allergens_count=counts.get("allergen", 0),
    )


def ensure_profile(db: Session, user_id: str) -> Profile:
    """Create the profile row for a user on first sign-in."""
    _require_user_id(user_id)
    profile = db.get(Profile, user_id)
    if profile is not None:
        return profile

    profile = Profile(id=user_id, ai_requests_count=settings.ai_default_quota)
    db.add(profile)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        # A concurrent request may have created it first
        existing = db.get(Profile, user_id)
        if existing is not None:
            return existing
        raise ProfileServiceError("internal_error", "Failed to create profile.", e) from e
    db.refresh(profile)
    logger.info("Created profile for user %s", user_id)
    return profile


def get_profile(db: Session, user_id: str) -> ProfileResponseDto:
    _require_user_id(user_id)
    return _to_dto(db, _load_profile(db, user_id))


def update_profile(db: Session, user_id: str, command: ProfileUpdateCommand) -> ProfileResponseDto:
    """Apply only the fields present in the command; updated_at is always refreshed."""
    _require_user_id(user_id)
    profile = _load_profile(db, user_id)

    changes = command.model_dump(exclude_unset=True, by_alias=False)
    for field, value in changes.items():
        setattr(profile, field, value)
    profile.updated_at = utcnow()

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise ProfileServiceError("internal_error", "Failed to update profile.", e) from e

    db.refresh(profile)
    return _to_dto(db, profile)


def decrement_ai_requests_count(db: Session, user_id: str) -> ProfileResponseDto:
    _require_user_id(user_id)
    profile = _load_profile(db, user_id)

    if profile.ai_requests_count <= 0:
        raise ProfileServiceError("quota_exceeded", "AI generation limit reached.")

    try:
        result = db.execute(
            update(Profile)
            .where(Profile.id == user_id, Profile.ai_requests_count > 0)
            .values(
                ai_requests_count=Profile.ai_requests_count - 1,
                updated_at=utcnow(),
            )
        )
        if result.rowcount == 0:
            db.rollback()
            raise ProfileServiceError("quota_exceeded", "AI generation limit reached.")
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise ProfileServiceError("internal_error", "Failed to update AI request counter.", e) from e

    db.expire(profile)
    return get_profile(db, user_id)


def get_onboarding_notice(db: Session, user_id: str, now: Optional[datetime] = None) -> OnboardingNoticeResponseDto:
    """Show the reminder while both notes are empty and no dismissal is in force."""
    now = now or utcnow()
    profile = _load_profile(db, user_id)

    preferences_empty = not profile.disliked_ingredients_note and not profile.allergens_note
    hidden_until = as_utc(profile.onboarding_notification_hidden_until)
    dismissed = hidden_until is not None and hidden_until > now

    return OnboardingNoticeResponseDto(
        show=preferences_empty and not dismissed,
        dismissible_until=hidden_until,
    )


def dismiss_onboarding_notice(
    db: Session, user_id: str, now: Optional[datetime] = None
) -> OnboardingNoticeDismissResponseDto:
    now = now or utcnow()
    profile = _load_profile(db, user_id)

    hidden_until = now + timedelta(hours=settings.onboarding_dismiss_hours)
    profile.onboarding_notification_hidden_until = hidden_until
    profile.updated_at = now
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise ProfileServiceError("internal_error", "Failed to update dismissal timestamp.", e) from e

    return OnboardingNoticeDismissResponseDto(hidden_until=hidden_until)
