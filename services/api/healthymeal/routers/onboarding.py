from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import CurrentUser, get_current_user
from ..errors import to_api_error
from ..schemas import OnboardingNoticeDismissResponseDto, OnboardingNoticeResponseDto
from ..services.profile import ProfileServiceError, dismiss_onboarding_notice, get_onboarding_notice

router = APIRouter()

ERROR_STATUS = {
    "profile_not_found": 404,
    "internal_error": 500,
}

ERROR_MESSAGES = {
    "profile_not_found": "User profile not found.",
    "internal_error": "An internal server error occurred.",
}


@router.get("/onboarding-notice", response_model=OnboardingNoticeResponseDto)
def read_onboarding_notice(
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    try:
        return get_onboarding_notice(db, user.id)
    except ProfileServiceError as e:
        raise to_api_error(e, ERROR_STATUS, ERROR_MESSAGES)


@router.post("/onboarding-notice/dismiss", response_model=OnboardingNoticeDismissResponseDto)
def dismiss_notice(
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Hide the reminder for the configured number of hours."""
    try:
        return dismiss_onboarding_notice(db, user.id)
    except ProfileServiceError as e:
        raise to_api_error(e, ERROR_STATUS, ERROR_MESSAGES)
