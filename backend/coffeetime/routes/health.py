"""
CoffeeTime AI Backend: Health Check Route
=========================================

What:  Health check endpoint for container liveness checks and monitoring.
How:   Runs SELECT 1 against the settings store and reports whether the
       server fallback key is configured. Providers are never called from
       here; each call would spend the operator's quota.

Status levels:
    healthy:   database reachable and fallback key configured
    degraded:  database reachable, no fallback key (callers must bring keys)
    unhealthy: database unreachable
"""

import logging
import time

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from coffeetime import __version__
from coffeetime.config import settings
from coffeetime.database import engine
from coffeetime.schemas.ai import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check() -> HealthResponse:
    db_status = "connected"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    fallback_status = "configured" if settings.gemini_api_key else "missing"
    if fallback_status == "missing" and overall == "healthy":
        overall = "degraded"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        fallback_key=fallback_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
