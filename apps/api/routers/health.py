"""
Health check endpoints.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
import redis.asyncio as redis
from redis.exceptions import RedisError

from config import settings
from database import engine

router = APIRouter()
logger = logging.getLogger(__name__)


def _key_status(value: str) -> str:
    return "configured" if (value or "").strip() else "missing"


async def _database_status() -> str:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Database health check failed: %s", exc)
        return f"down: {exc}"
    return "up"


async def _redis_status() -> str:
    client = redis.from_url(settings.REDIS_URL)
    try:
        await client.ping()
    except (RedisError, OSError) as exc:
        return f"down: {exc}"
    finally:
        await client.aclose()
    return "up"


@router.get("/health")
async def health_check():
    """Status of the API and its backing services."""
    database = await _database_status()
    cache = await _redis_status()
    return {
        "status": "healthy" if database == "up" and cache == "up" else "degraded",
        "api": "up",
        "database": database,
        "redis": cache,
        "inference_api_key": _key_status(settings.OPENAI_API_KEY),
        "zero_shot_api_key": _key_status(settings.HUGGING_FACE_API_KEY),
    }


@router.get("/health/ready")
async def readiness_check():
    """Ready once generation can run: inference key present and database reachable."""
    missing = []
    if _key_status(settings.OPENAI_API_KEY) == "missing":
        missing.append("OPENAI_API_KEY")
    if await _database_status() != "up":
        missing.append("DATABASE")

    if missing:
        return JSONResponse(status_code=503, content={"ready": False, "missing": missing})
    return {"ready": True}


@router.get("/health/live")
async def liveness_check():
    return {"alive": True}
