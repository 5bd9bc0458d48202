"""Health check endpoints.

Provides:
- Basic liveness check (/health/)
- Dependency check (/health/health): database and Redis broker
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

_start_time = time.monotonic()
_start_datetime = datetime.now(timezone.utc).isoformat()


@router.get("/", response_model=dict[str, Any])
async def root() -> dict[str, Any]:
    """
    Get API root information and version.
    Used as a simple liveness check.
    """
    settings = get_settings()
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "ok",
        "started_at": _start_datetime,
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
    }


@router.get("/health")
async def health_check():
    """
    Health check with dependency verification.
    Pings the database and Redis. Returns 503 if the database is down;
    a Redis outage only degrades timeout escalation.
    """
    checks: dict[str, str] = {}

    try:
        import db.database as db_mod

        async with db_mod.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        checks["database"] = "unavailable"

    try:
        import redis.asyncio as aioredis

        client = aioredis.from_url(get_settings().REDIS_URL, socket_timeout=2)
        try:
            checks["redis"] = "ok" if await client.ping() else "unavailable"
        finally:
            await client.aclose()
    except Exception as e:
        logger.warning("Redis health check failed: %s", e)
        checks["redis"] = "unavailable"

    if checks["database"] != "ok":
        overall = "unhealthy"
    elif checks["redis"] != "ok":
        overall = "degraded"
    else:
        overall = "healthy"

    return JSONResponse(
        status_code=503 if overall == "unhealthy" else 200,
        content={"status": overall, "checks": checks},
    )
