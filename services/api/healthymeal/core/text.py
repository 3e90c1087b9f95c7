"""Text helpers for search parameters and LIKE patterns."""

from typing import Optional

LIKE_ESCAPE = "\\"


def escape_like(term: str) -> str:
    """Escape LIKE wildcards (%, _) and the escape char itself so input matches literally."""
    return (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def contains_pattern(term: str) -> str:
    return f"%{escape_like(term)}%"


def normalize_search(term: Optional[str], max_length: int) -> Optional[str]:
    """Trim a search query parameter; raises ValueError when it is blank or too long."""
    if term is None:
        return None
    term = term.strip()
    if not term:
        raise ValueError("search must not be empty")
    if len(term) > max_length:
        raise ValueError(f"search must not exceed {max_length} characters")
    return term
