from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..constants import PreferenceType
from ..db import get_db
from ..deps import CurrentUser, get_current_user
from ..errors import to_api_error
from ..schemas import PreferenceListResponseDto
from ..services.preferences import PreferenceServiceError, list_user_preferences

router = APIRouter()

ERROR_STATUS = {
    "invalid_query_params": 400,
    "internal_error": 500,
}

ERROR_MESSAGES = {
    "invalid_query_params": "Query parameters are invalid.",
    "internal_error": "Failed to retrieve preferences due to an internal error.",
}


@router.get("/preferences", response_model=PreferenceListResponseDto)
def get_preferences(
    preference_type: Optional[PreferenceType] = Query(None, alias="type"),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    try:
        items = list_user_preferences(db, user.id, preference_type)
    except PreferenceServiceError as e:
        raise to_api_error(e, ERROR_STATUS, ERROR_MESSAGES)
    return PreferenceListResponseDto(items=items)
