"""FastAPI dependencies for the HealthyMeal API.

Provides:
- Current user resolution (session cookie or bearer token, verified locally)
- Auth provider and AI provider clients
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import jwt
from fastapi import Header, Request

from .core.ai_client import OpenRouterClient
from .core.auth_client import SupabaseAuthClient
from .errors import ApiError
from .settings import settings

logger = logging.getLogger("healthymeal.auth")


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: str = ""


def _extract_token(request: Request, authorization: Optional[str]) -> Optional[str]:
    token = request.cookies.get(settings.access_cookie_name)
    if token:
        return token
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return None


def decode_access_token(token: str) -> dict:
    return jwt.decode(
        token,
        settings.supabase_jwt_secret,
        algorithms=["HS256"],
        audience=settings.supabase_jwt_audience,
        options={"require": ["sub", "exp"]},
    )


def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> CurrentUser:
    """Resolve the signed-in user.

    Raises:
        ApiError 401 missing_token if no token was sent
        ApiError 401 invalid_token if the token fails verification
    """
    token = _extract_token(request, authorization)
    if not token:
        raise ApiError("missing_token", "Authentication required. Please provide a valid token.", 401)

    try:
        claims = decode_access_token(token)
    except jwt.PyJWTError as e:
        logger.warning("%s %s: rejected token: %s", request.method, request.url.path, e)
        raise ApiError("invalid_token", "Invalid authentication token.", 401) from e

    return CurrentUser(id=str(claims["sub"]), email=claims.get("email") or "")


@lru_cache
def get_auth_client() -> SupabaseAuthClient:
    return SupabaseAuthClient()


@lru_cache
def get_ai_client() -> Optional[OpenRouterClient]:
    """None when no OpenRouter key is configured."""
    return OpenRouterClient.from_settings()
