"""
Health check routes.
"""
from datetime import datetime, timezone
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
import redis.asyncio as redis

from app.core.database import get_db
from app.core.config import settings
from app.schemas.base import BaseSchema

router = APIRouter(tags=["health"])


class HealthResponse(BaseSchema):
    """Health check response."""

    status: str
    version: str
    timestamp: str
    checks: dict


async def _check_database(db: AsyncSession) -> str:
    try:
        await db.execute(text("SELECT 1"))
        return "healthy"
    except Exception as e:
        return f"unhealthy: {type(e).__name__}"


async def _check_redis() -> str:
    """Broker reachability; the workers cannot pick up attempts without it."""
    client = redis.from_url(settings.redis_url, socket_connect_timeout=2)
    try:
        await client.ping()
        return "healthy"
    except Exception as e:
        return f"unhealthy: {type(e).__name__}"
    finally:
        await client.aclose()


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint for monitoring.

    Always 200; `status` is "degraded" when a dependency is down.
    """
    checks = {
        "database": await _check_database(db),
        "redis": await _check_redis(),
    }
    all_healthy = all(v == "healthy" for v in checks.values())

    return HealthResponse(
        status="healthy" if all_healthy else "degraded",
        version=settings.app_version,
        timestamp=datetime.now(timezone.utc).isoformat(),
        checks=checks,
    )
