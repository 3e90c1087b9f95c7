import time
import uuid

import fakeredis
import fakeredis.aioredis
import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from healthymeal.main import app
from healthymeal.db import Base, enable_sqlite_foreign_keys, get_db
from healthymeal.infra import redis_client
from healthymeal.models import Product, Profile
from healthymeal.routers.recipes import limiter
from healthymeal.settings import settings

# --- Test Database Setup ---

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

# StaticPool keeps a single in-memory connection shared by every session
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
enable_sqlite_foreign_keys(engine)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

USER_ID = "11111111-1111-1111-1111-111111111111"
OTHER_USER_ID = "22222222-2222-2222-2222-222222222222"


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


def make_token(user_id: str = USER_ID, email: str = "cook@example.com", expires_in: int = 3600, **claims) -> str:
    payload = {
        "sub": user_id,
        "email": email,
        "aud": settings.supabase_jwt_audience,
        "role": "authenticated",
        "exp": int(time.time()) + expires_in,
    }
    payload.update(claims)
    return jwt.encode(payload, settings.supabase_jwt_secret, algorithm="HS256")


def auth_headers(user_id: str = USER_ID) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield


@pytest.fixture(autouse=True)
def mock_redis():
    server = fakeredis.FakeServer()
    redis_client._redis_async = fakeredis.aioredis.FakeRedis(server=server, decode_responses=True)
    yield redis_client._redis_async
    redis_client._redis_async = None


@pytest.fixture
def client():
    """Test client with DB override."""
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def db_session():
    """Direct database session for setup."""
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def profile(db_session):
    """Profile of the default test user."""
    p = Profile(id=USER_ID, ai_requests_count=5)
    db_session.add(p)
    db_session.commit()
    db_session.refresh(p)
    return p


@pytest.fixture
def other_profile(db_session):
    p = Profile(id=OTHER_USER_ID, ai_requests_count=5)
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture
def headers(profile):
    return auth_headers(USER_ID)


@pytest.fixture
def other_headers(other_profile):
    return auth_headers(OTHER_USER_ID)


@pytest.fixture
def products(db_session):
    """A small product catalog keyed by name."""
    names = ["Lettuce", "Tomato", "Olive oil", "Chicken breast", "Rice"]
    items = [Product(id=str(uuid.uuid4()), name=name) for name in names]
    db_session.add_all(items)
    db_session.commit()
    return {p.name: p.id for p in items}
