import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..constants import LIST_DEFAULT_LIMIT, ProductSort, SEARCH_MAX_LENGTH
from ..core.text import normalize_search
from ..db import get_db
from ..deps import CurrentUser, get_current_user
from ..errors import ApiError, to_api_error
from ..schemas import ProductListResponseDto
from ..services.products import ProductServiceError, list_products

router = APIRouter()
logger = logging.getLogger("healthymeal.products")

ERROR_STATUS = {
    "invalid_query_params": 400,
    "internal_error": 500,
}

ERROR_MESSAGES = {
    "invalid_query_params": "Query parameters are invalid.",
    "internal_error": "Failed to retrieve products due to an internal error.",
}


@router.get("/products", response_model=ProductListResponseDto)
def get_products(
    search: Optional[str] = Query(None),
    sort: ProductSort = Query("name.asc"),
    limit: int = Query(LIST_DEFAULT_LIMIT),
    offset: int = Query(0),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    try:
        search = normalize_search(search, SEARCH_MAX_LENGTH)
    except ValueError as e:
        raise ApiError("invalid_query_params", str(e), 400)

    try:
        return list_products(db, search=search, limit=limit, offset=offset, sort=sort)
    except ProductServiceError as e:
        logger.warning("GET /api/products: service error %s", e.code)
        raise to_api_error(e, ERROR_STATUS, ERROR_MESSAGES)
