"""Thin client for the hosted auth provider (Supabase GoTrue REST API)."""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..settings import settings

logger = logging.getLogger("healthymeal.auth")


class AuthProviderError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


@dataclass
class AuthSession:
    user_id: str
    email: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None


class SupabaseAuthClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        anon_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url or settings.supabase_url).rstrip("/")
        self.anon_key = anon_key if anon_key is not None else settings.supabase_anon_key
        self.timeout = timeout or settings.auth_timeout_seconds
        self._transport = transport

    def _headers(self, access_token: Optional[str] = None) -> dict[str, str]:
        headers = {"apikey": self.anon_key, "Content-Type": "application/json"}
        headers["Authorization"] = f"Bearer {access_token or self.anon_key}"
        return headers

    def _post(self, path: str, payload: Optional[dict] = None, access_token: Optional[str] = None) -> Any:
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(
                    f"{self.base_url}{path}",
                    json=payload or {},
                    headers=self._headers(access_token),
                )
        except httpx.HTTPError as e:
            logger.error("Auth provider unreachable: %s", e)
            raise AuthProviderError(503, "Authentication service is unavailable.") from e

        if response.status_code >= 400:
            raise AuthProviderError(response.status_code, _error_message(response))
        if not response.content:
            return {}
        return response.json()

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        data = self._post("/auth/v1/token?grant_type=password", {"email": email, "password": password})
        session = _to_session(data)
        if session is None or not session.access_token:
            raise AuthProviderError(401, "Invalid login credentials")
        return session

    def sign_up(self, email: str, password: str) -> Optional[AuthSession]:
        """Returns None when the account was created but no session was issued."""
        data = self._post("/auth/v1/signup", {"email": email, "password": password})
        return _to_session(data, fallback_email=email)

    def sign_out(self, access_token: str) -> None:
        self._post("/auth/v1/logout", access_token=access_token)


def _to_session(data: Any, fallback_email: str = "") -> Optional[AuthSession]:
    if not isinstance(data, dict):
        return None
    user = data.get("user") or {}
    access_token = data.get("access_token")
    if not user.get("id") or not access_token:
        return None
    return AuthSession(
        user_id=user["id"],
        email=user.get("email") or fallback_email,
        access_token=access_token,
        refresh_token=data.get("refresh_token"),
        expires_in=data.get("expires_in"),
    )


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.reason_phrase or "Authentication request failed."
    if isinstance(data, dict):
        for key in ("msg", "error_description", "message", "error"):
            if isinstance(data.get(key), str):
                return data[key]
    return "Authentication request failed."
