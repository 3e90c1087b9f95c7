"""User preference listing (like / dislike / allergen per product)."""

from typing import Literal, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..constants import PREFERENCE_TYPES
from ..errors import ServiceError
from ..models import UserPreference
from ..schemas import PreferenceListItemDto, ProductListItemDto


PreferenceServiceErrorCode = Literal["invalid_query_params", "internal_error"]


class PreferenceServiceError(ServiceError):
    def __init__(self, code: PreferenceServiceErrorCode, message: Optional[str] = None, cause=None):
        super().__init__(code, message, cause)


def list_user_preferences(
    db: Session,
    user_id: str,
    preference_type: Optional[str] = None,
) -> list[PreferenceListItemDto]:
    if preference_type is not None and preference_type not in PREFERENCE_TYPES:
        raise PreferenceServiceError(
            "invalid_query_params",
            f"type must be one of: {', '.join(PREFERENCE_TYPES)}",
        )

    query = (
        select(UserPreference)
        .options(joinedload(UserPreference.product))
        .where(UserPreference.user_id == user_id)
        .order_by(UserPreference.created_at.asc(), UserPreference.id.asc())
    )
    if preference_type:
        query = query.where(UserPreference.preference_type == preference_type)

    try:
        rows = db.scalars(query).all()
    except SQLAlchemyError as e:
        raise PreferenceServiceError("internal_error", "Failed to fetch user preferences.", e) from e

    items = []
    for row in rows:
        if row.product is None:
            raise PreferenceServiceError("internal_error", "Failed to load product data for preference.")
        items.append(
            PreferenceListItemDto(
                id=row.id,
                preference_type=row.preference_type,
                created_at=row.created_at,
                product=ProductListItemDto(id=row.product.id, name=row.product.name),
            )
        )
    return items
