"""
Health check endpoints.
"""

import logging
from pathlib import Path

from fastapi import APIRouter
from fastapi.responses import JSONResponse
import redis.asyncio as redis
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from config import settings
import database

router = APIRouter()
logger = logging.getLogger(__name__)


async def _probe_database() -> str:
    try:
        async with database.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Database health probe failed: %s", exc)
        return f"down: {exc}"
    return "up"


async def _probe_redis() -> str:
    client = redis.from_url(settings.REDIS_URL)
    try:
        await client.ping()
    except (redis.RedisError, OSError) as exc:
        return f"down: {exc}"
    finally:
        await client.aclose()
    return "up"


def _blob_storage_ready() -> bool:
    return Path(settings.BLOB_STORAGE_DIR).is_dir()


@router.get("/health")
async def health_check():
    """
    Overall status. Only the database degrades it: Redis backs rate limiting,
    which falls back to in-process counters.
    """
    database_status = await _probe_database()
    return {
        "status": "healthy" if database_status == "up" else "degraded",
        "api": "up",
        "database": database_status,
        "redis": await _probe_redis(),
        "blob_storage": "up" if _blob_storage_ready() else "missing",
    }


@router.get("/health/ready")
async def readiness_check():
    """Kubernetes-style readiness probe."""
    missing = []
    if not _blob_storage_ready():
        missing.append("BLOB_STORAGE_DIR")

    if missing:
        return JSONResponse(
            status_code=503,
            content={"ready": False, "missing": missing},
        )
    return {"ready": True}


@router.get("/health/live")
async def liveness_check():
    """Kubernetes-style liveness probe."""
    return {"alive": True}
