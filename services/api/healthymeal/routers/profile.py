import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import CurrentUser, get_current_user
from ..errors import ApiError, to_api_error
from ..models import utcnow
from ..schemas import ProfileResponseDto, ProfileUpdateCommand
from ..services.profile import ProfileServiceError, get_profile, update_profile

router = APIRouter()
logger = logging.getLogger("healthymeal.profile")

ERROR_STATUS = {
    "profile_not_found": 404,
    "invalid_input": 400,
    "timestamp_in_past": 409,
    "internal_error": 500,
}

ERROR_MESSAGES = {
    "profile_not_found": "User profile not found.",
    "invalid_input": "Invalid input provided.",
    "timestamp_in_past": "Timestamp cannot be in the past.",
    "internal_error": "An internal server error occurred.",
}


@router.get("/profile", response_model=ProfileResponseDto)
def read_profile(
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Profile with preference notes, quota and preference counts."""
    try:
        return get_profile(db, user.id)
    except ProfileServiceError as e:
        logger.warning("GET /api/profile: service error %s", e.code)
        raise to_api_error(e, ERROR_STATUS, ERROR_MESSAGES)


@router.patch("/profile", response_model=ProfileResponseDto)
def patch_profile(
    body: ProfileUpdateCommand,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    hidden_until = body.onboarding_notification_hidden_until
    if hidden_until is not None and hidden_until < utcnow():
        raise ApiError("timestamp_in_past", ERROR_MESSAGES["timestamp_in_past"], 409)

    try:
        return update_profile(db, user.id, body)
    except ProfileServiceError as e:
        logger.warning("PATCH /api/profile: service error %s", e.code)
        raise to_api_error(e, ERROR_STATUS, ERROR_MESSAGES)
