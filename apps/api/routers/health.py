"""Liveness, readiness and dependency status probes."""

import os
from typing import Dict, Tuple

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
import redis.asyncio as redis

from config import settings
from database import engine

router = APIRouter()


async def _check_database() -> Tuple[bool, str]:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        return False, f"down: {e}"
    return True, "up"


async def _check_redis() -> Tuple[bool, str]:
    client = redis.from_url(settings.REDIS_URL)
    try:
        await client.ping()
    except Exception as e:
        return False, f"down: {e}"
    finally:
        await client.aclose()
    return True, "up"


def _check_media_storage() -> str:
    if not settings.MEDIA_STORAGE_ENABLED:
        return "disabled"
    directory = settings.MEDIA_STORAGE_DIR
    if os.path.isdir(directory) and os.access(directory, os.W_OK):
        return "writable"
    # Created lazily on first upload.
    return "pending"


@router.get("/health")
async def health_check():
    """
    Dependency status for operators.

    The ledger lives in the database, so losing it marks the API unhealthy.
    Redis only backs rate limiting and degrades to in-process counters.
    """
    db_ok, db_status = await _check_database()
    redis_ok, redis_status = await _check_redis()

    status = "healthy"
    if not db_ok:
        status = "unhealthy"
    elif not redis_ok or not settings.OPENAI_API_KEY:
        status = "degraded"

    return {
        "status": status,
        "api": "up",
        "database": db_status,
        "redis": redis_status,
        "media_storage": _check_media_storage(),
        "openai_api_key": "configured" if settings.OPENAI_API_KEY else "missing",
    }


@router.get("/health/ready")
async def readiness_check():
    """Ready once billing can reach the ledger and image calls can be made."""
    missing: Dict[str, str] = {}
    if not settings.OPENAI_API_KEY:
        missing["OPENAI_API_KEY"] = "not configured"
    db_ok, db_status = await _check_database()
    if not db_ok:
        missing["database"] = db_status

    if missing:
        return JSONResponse(status_code=503, content={"ready": False, "missing": missing})
    return {"ready": True}


@router.get("/health/live")
async def liveness_check():
    return {"alive": True}
