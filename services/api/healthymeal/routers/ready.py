from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db, ping
from ..infra.redis_client import redis_ok

router = APIRouter()


@router.get("/ready")
async def ready(db: Session = Depends(get_db)):
    return {"ok": True, "redisOk": await redis_ok(), "dbOk": ping(db)}
