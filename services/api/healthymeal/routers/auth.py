"""Auth gateway: sign-in, sign-up and sign-out through the hosted auth provider.

Successful sign-in/sign-up set the session cookies and make sure the user's
profile row exists.
"""

import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from ..core.auth_client import AuthProviderError, AuthSession, SupabaseAuthClient
from ..db import get_db
from ..deps import get_auth_client
from ..errors import ApiError
from ..schemas import AuthResponseDto, AuthUserDto, LoginCommand, RegisterCommand
from ..services.profile import ProfileServiceError, ensure_profile
from ..settings import settings

router = APIRouter()
logger = logging.getLogger("healthymeal.auth")


def _set_session_cookies(response: Response, session: AuthSession) -> None:
    options = dict(
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path="/",
        max_age=settings.session_cookie_max_age,
    )
    response.set_cookie(settings.access_cookie_name, session.access_token, **options)
    if session.refresh_token:
        response.set_cookie(settings.refresh_cookie_name, session.refresh_token, **options)


def _clear_session_cookies(response: Response) -> None:
    response.delete_cookie(settings.access_cookie_name, path="/")
    response.delete_cookie(settings.refresh_cookie_name, path="/")


def _ensure_profile(db: Session, user_id: str) -> None:
    try:
        ensure_profile(db, user_id)
    except ProfileServiceError as e:
        logger.error("Failed to provision profile for %s: %s", user_id, e.cause or e)
        raise ApiError("internal_error", status_code=500)


@router.post("/auth/login", response_model=AuthResponseDto)
def login(
    body: LoginCommand,
    response: Response,
    db: Session = Depends(get_db),
    auth: SupabaseAuthClient = Depends(get_auth_client),
):
    try:
        session = auth.sign_in_with_password(body.email, body.password)
    except AuthProviderError as e:
        if e.status >= 500:
            raise ApiError("auth_unavailable", "Authentication service is unavailable.", 503)
        logger.info("Login rejected for %s: %s", body.email, e.message)
        raise ApiError("invalid_credentials", "Invalid email or password.", 401)

    _ensure_profile(db, session.user_id)
    _set_session_cookies(response, session)
    return AuthResponseDto(user=AuthUserDto(id=session.user_id, email=session.email))


@router.post("/auth/register", response_model=AuthResponseDto)
def register(
    body: RegisterCommand,
    response: Response,
    db: Session = Depends(get_db),
    auth: SupabaseAuthClient = Depends(get_auth_client),
):
    try:
        session = auth.sign_up(body.email, body.password)
    except AuthProviderError as e:
        logger.info("Registration rejected for %s: %s", body.email, e.message)
        # The provider reports an already registered e-mail as 400/422
        status_code = 409 if e.status in (400, 422) else 400
        raise ApiError("registration_failed", e.message or "Failed to create account.", status_code)

    if session is None:
        logger.error("Sign-up for %s returned no session", body.email)
        raise ApiError("registration_failed", status_code=500)

    _ensure_profile(db, session.user_id)
    _set_session_cookies(response, session)
    return AuthResponseDto(user=AuthUserDto(id=session.user_id, email=session.email or body.email))


@router.post("/auth/logout")
def logout(
    request: Request,
    auth: SupabaseAuthClient = Depends(get_auth_client),
):
    token = request.cookies.get(settings.access_cookie_name)
    if token:
        try:
            auth.sign_out(token)
        except AuthProviderError as e:
            logger.error("Logout failed: %s", e.message)
            raise ApiError("logout_failed", "Failed to sign out. Please try again later.", 400)

    response = Response(status_code=200)
    _clear_session_cookies(response)
    return response
