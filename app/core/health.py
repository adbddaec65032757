"""Liveness and readiness endpoints."""

from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import ResponseCache, get_cache
from app.core.database import get_db
from app.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: Literal["ok", "degraded", "unhealthy"]
    database: Literal["connected", "disconnected"] | None = None
    cache: Literal["connected", "disconnected", "disabled"] | None = None


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness check; never touches a backend."""
    return HealthResponse(status="ok")


@router.get("/health/ready", response_model=HealthResponse)
async def readiness_check(
    db: AsyncSession = Depends(get_db),
    cache: ResponseCache = Depends(get_cache),
) -> HealthResponse:
    """Readiness check.

    The database is required. Redis is optional: losing it degrades the
    service (no caching) but does not make it unready.

    Args:
        db: Database session dependency.
        cache: Response cache dependency.

    Returns:
        Health status with backend states.
    """
    try:
        await db.execute(text("SELECT 1"))
        database: Literal["connected", "disconnected"] = "connected"
    except SQLAlchemyError as e:
        logger.error(
            "health.database_disconnected",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        database = "disconnected"

    if not cache.enabled:
        cache_state: Literal["connected", "disconnected", "disabled"] = "disabled"
    elif await cache.ping():
        cache_state = "connected"
    else:
        logger.warning("health.cache_disconnected")
        cache_state = "disconnected"

    if database == "disconnected":
        status: Literal["ok", "degraded", "unhealthy"] = "unhealthy"
    elif cache_state == "disconnected":
        status = "degraded"
    else:
        status = "ok"

    return HealthResponse(status=status, database=database, cache=cache_state)
