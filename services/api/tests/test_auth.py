"""Auth gateway against a stubbed GoTrue server."""

import json

import httpx
import pytest

from healthymeal.core.auth_client import AuthProviderError, SupabaseAuthClient
from healthymeal.deps import get_auth_client
from healthymeal.main import app
from healthymeal.models import Profile
from healthymeal.settings import settings

from conftest import make_token

NEW_USER_ID = "66666666-6666-6666-6666-666666666666"


def session_body(user_id=NEW_USER_ID, email="cook@example.com"):
    return {
        "access_token": make_token(user_id, email),
        "refresh_token": "refresh-123",
        "expires_in": 3600,
        "user": {"id": user_id, "email": email},
    }


class FakeGoTrue:
    def __init__(self, responses=None):
        self.responses = responses or {}
        self.requests = []

    def handler(self, request: httpx.Request):
        self.requests.append(request)
        response = self.responses.get(request.url.path)
        if response is None:
            return httpx.Response(404, json={"msg": "not found"})
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def gotrue():
    fake = FakeGoTrue()
    auth = SupabaseAuthClient(
        base_url="http://auth.test", anon_key="anon-key", transport=httpx.MockTransport(fake.handler)
    )
    app.dependency_overrides[get_auth_client] = lambda: auth
    yield fake
    app.dependency_overrides.pop(get_auth_client, None)


# --- Login ---


def test_login_sets_cookies_and_creates_profile(client, gotrue, db_session):
    gotrue.responses["/auth/v1/token"] = httpx.Response(200, json=session_body())

    response = client.post("/api/auth/login", json={"email": "cook@example.com", "password": "secret-pass"})

    assert response.status_code == 200, response.text
    assert response.json() == {"user": {"id": NEW_USER_ID, "email": "cook@example.com"}}
    assert response.cookies.get(settings.access_cookie_name)
    assert response.cookies.get(settings.refresh_cookie_name) == "refresh-123"
    set_cookie = response.headers.get("set-cookie", "").lower()
    assert "httponly" in set_cookie
    assert "samesite=lax" in set_cookie

    request = gotrue.requests[0]
    assert request.url.params["grant_type"] == "password"
    assert request.headers["apikey"] == "anon-key"
    assert json.loads(request.content) == {"email": "cook@example.com", "password": "secret-pass"}

    profile = db_session.get(Profile, NEW_USER_ID)
    assert profile is not None
    assert profile.ai_requests_count == settings.ai_default_quota


def test_session_cookie_authenticates_follow_up_requests(client, gotrue):
    gotrue.responses["/auth/v1/token"] = httpx.Response(200, json=session_body())
    client.post("/api/auth/login", json={"email": "cook@example.com", "password": "secret-pass"})

    response = client.get("/api/profile")
    assert response.status_code == 200
    assert response.json()["id"] == NEW_USER_ID


def test_login_keeps_existing_profile(client, gotrue, db_session):
    db_session.add(Profile(id=NEW_USER_ID, ai_requests_count=1))
    db_session.commit()
    gotrue.responses["/auth/v1/token"] = httpx.Response(200, json=session_body())

    client.post("/api/auth/login", json={"email": "cook@example.com", "password": "secret-pass"})

    db_session.expire_all()
    assert db_session.get(Profile, NEW_USER_ID).ai_requests_count == 1


def test_login_bad_credentials_is_401(client, gotrue):
    gotrue.responses["/auth/v1/token"] = httpx.Response(
        400, json={"error": "invalid_grant", "error_description": "Invalid login credentials"}
    )

    response = client.post("/api/auth/login", json={"email": "cook@example.com", "password": "wrong"})

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "invalid_credentials"
    assert settings.access_cookie_name not in response.cookies


def test_login_invalid_body_is_400(client, gotrue):
    response = client.post("/api/auth/login", json={"email": "not-an-email", "password": "x"})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_payload"
    assert gotrue.requests == []


def test_login_provider_down_is_503(client, gotrue):
    gotrue.responses["/auth/v1/token"] = httpx.ConnectError("down")

    response = client.post("/api/auth/login", json={"email": "cook@example.com", "password": "secret-pass"})
    assert response.status_code == 503


# --- Register ---


def test_register_creates_profile(client, gotrue, db_session):
    gotrue.responses["/auth/v1/signup"] = httpx.Response(200, json=session_body(email="new@example.com"))

    response = client.post(
        "/api/auth/register",
        json={"email": "new@example.com", "password": "longenough", "confirmPassword": "longenough"},
    )

    assert response.status_code == 200, response.text
    assert response.json()["user"]["email"] == "new@example.com"
    assert response.cookies.get(settings.access_cookie_name)
    assert db_session.get(Profile, NEW_USER_ID) is not None


def test_register_password_mismatch_is_400(client, gotrue):
    response = client.post(
        "/api/auth/register",
        json={"email": "new@example.com", "password": "longenough", "confirmPassword": "different1"},
    )
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Passwords do not match."
    assert gotrue.requests == []


def test_register_short_password_is_400(client, gotrue):
    response = client.post("/api/auth/register", json={"email": "new@example.com", "password": "short"})
    assert response.status_code == 400


def test_register_existing_user_is_409(client, gotrue):
    gotrue.responses["/auth/v1/signup"] = httpx.Response(422, json={"msg": "User already registered"})

    response = client.post("/api/auth/register", json={"email": "new@example.com", "password": "longenough"})

    assert response.status_code == 409
    assert response.json()["error"] == {"code": "registration_failed", "message": "User already registered"}


def test_register_other_provider_failure_is_400(client, gotrue):
    gotrue.responses["/auth/v1/signup"] = httpx.Response(429, json={"msg": "Email rate limit exceeded"})

    response = client.post("/api/auth/register", json={"email": "new@example.com", "password": "longenough"})
    assert response.status_code == 400


def test_register_without_session_is_500(client, gotrue, db_session):
    # Email confirmation enabled: the provider returns the user but no session
    gotrue.responses["/auth/v1/signup"] = httpx.Response(200, json={"id": NEW_USER_ID, "email": "new@example.com"})

    response = client.post("/api/auth/register", json={"email": "new@example.com", "password": "longenough"})

    assert response.status_code == 500
    assert response.json()["error"]["code"] == "registration_failed"
    assert db_session.get(Profile, NEW_USER_ID) is None


# --- Logout ---


def test_logout_revokes_and_clears_cookies(client, gotrue):
    gotrue.responses["/auth/v1/logout"] = httpx.Response(204)
    token = make_token(NEW_USER_ID)
    client.cookies.set(settings.access_cookie_name, token)

    response = client.post("/api/auth/logout")

    assert response.status_code == 200
    assert gotrue.requests[0].headers["Authorization"] == f"Bearer {token}"
    assert f'{settings.access_cookie_name}=""' in response.headers.get("set-cookie", "")


def test_logout_without_session_is_ok(client, gotrue):
    response = client.post("/api/auth/logout")
    assert response.status_code == 200
    assert gotrue.requests == []


def test_logout_provider_failure_is_400(client, gotrue):
    gotrue.responses["/auth/v1/logout"] = httpx.Response(500, json={"msg": "boom"})
    client.cookies.set(settings.access_cookie_name, make_token(NEW_USER_ID))

    response = client.post("/api/auth/logout")

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "logout_failed"


# --- Token verification ---


def test_expired_token_is_rejected(client, profile):
    token = make_token(expires_in=-60)
    response = client.get("/api/profile", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "invalid_token"


def test_wrong_audience_is_rejected(client, profile):
    token = make_token(aud="anon")
    response = client.get("/api/profile", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "invalid_token"


def test_provider_error_message_extraction():
    auth = SupabaseAuthClient(
        base_url="http://auth.test",
        anon_key="anon",
        transport=httpx.MockTransport(lambda request: httpx.Response(400, json={"error_description": "Bad"})),
    )
    with pytest.raises(AuthProviderError) as exc:
        auth.sign_in_with_password("a@example.com", "pw")
    assert exc.value.status == 400
    assert exc.value.message == "Bad"
