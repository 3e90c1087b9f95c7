"""Redis-backed replay of create requests carrying an ``Idempotency-Key`` header.

A key moves through two states: ``processing`` (short TTL, taken with SET NX)
and ``done`` (stored response, replayed for a day). Keys are scoped per user
and route.
"""

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Optional, Union

from fastapi import Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from ..errors import ApiError
from .redis_client import get_redis

logger = logging.getLogger("healthymeal.idempotency")

IDEMPOTENCY_HEADER = "Idempotency-Key"
DONE_TTL_SEC = 60 * 60 * 24
PROCESSING_TTL_SEC = 60


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _hash_request(method: str, path: str, body_bytes: bytes) -> str:
    h = hashlib.sha256()
    h.update(method.encode("utf-8"))
    h.update(b"|")
    h.update(path.encode("utf-8"))
    h.update(b"|")
    h.update(body_bytes or b"")
    return h.hexdigest()


def _idemp_redis_key(user_id: str, route_key: str, idem_key: str) -> str:
    return f"healthymeal:idemp:{user_id}:{route_key}:{idem_key}"


def _still_processing() -> ApiError:
    return ApiError(
        "idempotency_in_progress",
        "Request with this Idempotency-Key is still processing. Retry shortly.",
        409,
    )


async def idempotency_precheck(
    request: Request, *, user_id: str, route_key: str
) -> Union[None, tuple[str, str], JSONResponse]:
    """Decide how a create request proceeds.

    Returns None when no key was sent or Redis is unreachable, ``(redis_key, request_hash)`` when the
    caller holds the processing lock, or a JSONResponse replaying a stored result.
    """
    idem_key = request.headers.get(IDEMPOTENCY_HEADER)
    if not idem_key:
        return None

    body_bytes = await request.body()
    req_hash = _hash_request(request.method, request.url.path, body_bytes)
    rkey = _idemp_redis_key(user_id, route_key, idem_key)
    try:
        r = await get_redis()
        raw = await r.get(rkey)
    except RedisError as e:
        # Without Redis the request is processed once, undeduplicated
        logger.warning("Idempotency store unavailable, processing %s without it: %s", rkey, e)
        return None

    if raw:
        data = json.loads(raw)
        if data.get("request_hash") and data["request_hash"] != req_hash:
            raise ApiError(
                "idempotency_key_reused",
                "Idempotency-Key reused with different request payload.",
                409,
            )
        if data.get("state") == "done":
            logger.info("Replaying stored response for %s", rkey)
            return JSONResponse(content=data.get("body"), status_code=int(data.get("status", 200)))
        raise _still_processing()

    processing_payload = {
        "state": "processing",
        "status": None,
        "body": None,
        "created_at": _iso_now(),
        "completed_at": None,
        "request_hash": req_hash,
    }
    try:
        ok = await r.set(rkey, json.dumps(processing_payload), ex=PROCESSING_TTL_SEC, nx=True)
    except RedisError as e:
        logger.warning("Idempotency store unavailable, processing %s without it: %s", rkey, e)
        return None
    if not ok:
        raise _still_processing()

    return rkey, req_hash


async def idempotency_store_result(redis_key: str, req_hash: str, *, status: int, body: dict) -> None:
    payload = {
        "state": "done",
        "status": int(status),
        "body": body,
        "created_at": None,
        "completed_at": _iso_now(),
        "request_hash": req_hash,
    }
    try:
        r = await get_redis()
        await r.set(redis_key, json.dumps(payload), ex=DONE_TTL_SEC)
    except RedisError as e:
        logger.warning("Failed to store idempotent result for %s: %s", redis_key, e)


async def idempotency_clear_key(redis_key: Optional[str]) -> None:
    """Release the processing lock after a failed request."""
    if not redis_key:
        return
    try:
        r = await get_redis()
        await r.delete(redis_key)
    except RedisError as e:
        logger.warning("Failed to clear idempotency key %s: %s", redis_key, e)
