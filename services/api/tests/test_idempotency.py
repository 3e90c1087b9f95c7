import json
import uuid
from unittest.mock import AsyncMock, patch

import pytest
from fakeredis import FakeAsyncRedis
from fastapi import Request
from fastapi.responses import JSONResponse
from redis.exceptions import ConnectionError as RedisConnectionError

from healthymeal.errors import ApiError
from healthymeal.infra.idempotency import (
    idempotency_clear_key,
    idempotency_precheck,
    idempotency_store_result,
)
from healthymeal.models import Recipe

from conftest import USER_ID

# --- Mocking Redis ---


@pytest.fixture
def fake_redis():
    return FakeAsyncRedis(decode_responses=True)


@pytest.fixture
def patch_redis_client(fake_redis):
    with patch("healthymeal.infra.idempotency.get_redis", return_value=fake_redis):
        yield fake_redis


def _request(idem_key=None, body=b'{"name": "Soup"}'):
    req = AsyncMock(spec=Request)
    req.headers = {"Idempotency-Key": idem_key} if idem_key else {}
    req.method = "POST"
    req.url.path = "/api/recipes"
    req.body = AsyncMock(return_value=body)
    return req


# --- Unit Tests for Logic ---


@pytest.mark.asyncio
async def test_precheck_without_header_is_a_no_op(patch_redis_client):
    assert await idempotency_precheck(_request(), user_id=USER_ID, route_key="test") is None
    assert await patch_redis_client.keys("*") == []


@pytest.mark.asyncio
async def test_idempotency_flow(patch_redis_client):
    fake_redis = patch_redis_client
    idem_key = str(uuid.uuid4())
    req = _request(idem_key)

    # 1. First call takes the processing lock
    res = await idempotency_precheck(req, user_id=USER_ID, route_key="test")
    assert isinstance(res, tuple)
    rkey, rhash = res
    assert rkey.endswith(idem_key)
    assert USER_ID in rkey
    assert json.loads(await fake_redis.get(rkey))["state"] == "processing"

    # 2. Concurrent call with the same key
    with pytest.raises(ApiError) as exc:
        await idempotency_precheck(req, user_id=USER_ID, route_key="test")
    assert exc.value.status_code == 409
    assert exc.value.code == "idempotency_in_progress"

    # 3. Store result
    await idempotency_store_result(rkey, rhash, status=201, body={"id": "abc"})
    data = json.loads(await fake_redis.get(rkey))
    assert data["state"] == "done"
    assert data["status"] == 201

    # 4. Replay
    res2 = await idempotency_precheck(req, user_id=USER_ID, route_key="test")
    assert isinstance(res2, JSONResponse)
    assert json.loads(res2.body) == {"id": "abc"}
    assert res2.status_code == 201


@pytest.mark.asyncio
async def test_key_reused_with_different_payload(patch_redis_client):
    idem_key = str(uuid.uuid4())
    rkey, rhash = await idempotency_precheck(_request(idem_key), user_id=USER_ID, route_key="test")
    await idempotency_store_result(rkey, rhash, status=201, body={"id": "abc"})

    with pytest.raises(ApiError) as exc:
        await idempotency_precheck(_request(idem_key, body=b'{"name": "Stew"}'), user_id=USER_ID, route_key="test")
    assert exc.value.code == "idempotency_key_reused"


@pytest.mark.asyncio
async def test_keys_are_scoped_per_user(patch_redis_client):
    idem_key = str(uuid.uuid4())
    first = await idempotency_precheck(_request(idem_key), user_id=USER_ID, route_key="test")
    second = await idempotency_precheck(_request(idem_key), user_id="someone-else", route_key="test")
    assert first[0] != second[0]


@pytest.mark.asyncio
async def test_clear_key_releases_lock(patch_redis_client):
    idem_key = str(uuid.uuid4())
    rkey, _ = await idempotency_precheck(_request(idem_key), user_id=USER_ID, route_key="test")

    await idempotency_clear_key(rkey)
    await idempotency_clear_key(None)

    assert isinstance(await idempotency_precheck(_request(idem_key), user_id=USER_ID, route_key="test"), tuple)


# --- Integration with POST /api/recipes ---

PAYLOAD = {
    "name": "Tomato soup",
    "mealType": "dinner",
    "difficulty": "easy",
    "instructions": "Roast the tomatoes, blend with stock and season to taste.",
    "ingredients": "Tomatoes 1 kilogram\nStock 500 milliliter",
}


def test_recipe_creation_is_replayed(client, headers, db_session):
    idem_headers = dict(headers, **{"Idempotency-Key": str(uuid.uuid4())})

    resp1 = client.post("/api/recipes", json=PAYLOAD, headers=idem_headers)
    resp2 = client.post("/api/recipes", json=PAYLOAD, headers=idem_headers)

    assert resp1.status_code == 201, resp1.text
    assert resp2.status_code == 201, resp2.text
    assert resp1.json()["id"] == resp2.json()["id"]
    assert db_session.query(Recipe).count() == 1


def test_recipe_creation_key_reuse_is_409(client, headers):
    idem_headers = dict(headers, **{"Idempotency-Key": str(uuid.uuid4())})
    client.post("/api/recipes", json=PAYLOAD, headers=idem_headers)

    response = client.post("/api/recipes", json=dict(PAYLOAD, name="Other soup"), headers=idem_headers)

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "idempotency_key_reused"


def test_failed_creation_frees_the_key(client, headers, db_session):
    idem_headers = dict(headers, **{"Idempotency-Key": str(uuid.uuid4())})
    bad = dict(PAYLOAD, ingredients=[{"productId": str(uuid.uuid4()), "amount": 1, "unit": "gram"}])

    first = client.post("/api/recipes", json=bad, headers=idem_headers)
    assert first.status_code == 404

    second = client.post("/api/recipes", json=bad, headers=idem_headers)
    assert second.status_code == 404
    assert db_session.query(Recipe).count() == 0


def test_creation_without_key_is_not_deduplicated(client, headers, db_session):
    client.post("/api/recipes", json=PAYLOAD, headers=headers)
    client.post("/api/recipes", json=PAYLOAD, headers=headers)
    assert db_session.query(Recipe).count() == 2


def _unreachable_redis():
    broken = AsyncMock()
    broken.get.side_effect = RedisConnectionError("redis down")
    broken.set.side_effect = RedisConnectionError("redis down")
    broken.delete.side_effect = RedisConnectionError("redis down")
    return broken


@pytest.mark.asyncio
async def test_precheck_without_redis_proceeds_undeduplicated():
    with patch("healthymeal.infra.idempotency.get_redis", return_value=_unreachable_redis()):
        result = await idempotency_precheck(_request(str(uuid.uuid4())), user_id=USER_ID, route_key="test")
    assert result is None


def test_recipe_creation_with_key_survives_redis_outage(client, headers, db_session):
    idem_headers = dict(headers, **{"Idempotency-Key": str(uuid.uuid4())})

    with patch("healthymeal.infra.idempotency.get_redis", return_value=_unreachable_redis()):
        response = client.post("/api/recipes", json=PAYLOAD, headers=idem_headers)

    assert response.status_code == 201, response.text
    assert db_session.query(Recipe).count() == 1
