"""Shared product catalog queries."""

from typing import Iterable, Literal, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..constants import LIST_DEFAULT_LIMIT, LIST_MAX_LIMIT
from ..core.text import LIKE_ESCAPE, contains_pattern
from ..errors import ServiceError
from ..models import Product
from ..schemas import ProductListItemDto, ProductListResponseDto


ProductServiceErrorCode = Literal["invalid_query_params", "internal_error"]

PRODUCT_SORT_MAP = {
    "name.asc": (Product.name, True),
    "name.desc": (Product.name, False),
}


class ProductServiceError(ServiceError):
    def __init__(self, code: ProductServiceErrorCode, message: Optional[str] = None, cause=None):
        super().__init__(code, message, cause)


def _check_range(value: int, low: int, high: Optional[int], label: str) -> None:
    if value < low or (high is not None and value > high):
        raise ProductServiceError("invalid_query_params", f"{label} is out of range.")


def list_products(
    db: Session,
    search: Optional[str] = None,
    limit: int = LIST_DEFAULT_LIMIT,
    offset: int = 0,
    sort: str = "name.asc",
) -> ProductListResponseDto:
    if sort not in PRODUCT_SORT_MAP:
        raise ProductServiceError("invalid_query_params", "Unsupported sort parameter.")
    _check_range(limit, 1, LIST_MAX_LIMIT, "limit")
    _check_range(offset, 0, None, "offset")

    column, ascending = PRODUCT_SORT_MAP[sort]
    term = (search or "").strip()

    query = select(Product)
    count_query = select(func.count()).select_from(Product)
    if term:
        condition = Product.name.ilike(contains_pattern(term), escape=LIKE_ESCAPE)
        query = query.where(condition)
        count_query = count_query.where(condition)

    query = (
        query.order_by(column.asc() if ascending else column.desc(), Product.id.asc())
        .offset(offset)
        .limit(limit)
    )

    try:
        rows = db.scalars(query).all()
        total = db.scalar(count_query) or 0
    except SQLAlchemyError as e:
        raise ProductServiceError("internal_error", "Failed to fetch products.", e) from e

    return ProductListResponseDto(
        items=[ProductListItemDto(id=p.id, name=p.name) for p in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


def fetch_products_map(db: Session, product_ids: Iterable[str]) -> dict[str, ProductListItemDto]:
    """Resolve products in one IN query; ids that do not exist are simply absent."""
    ids = list(product_ids)
    if not ids:
        return {}

    try:
        rows = db.scalars(select(Product).where(Product.id.in_(ids))).all()
    except SQLAlchemyError as e:
        raise ProductServiceError("internal_error", "Failed to fetch products.", e) from e

    return {p.id: ProductListItemDto(id=p.id, name=p.name) for p in rows}
