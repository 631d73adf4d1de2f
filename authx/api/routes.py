"""Health endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from authx.database import health_check as db_health_check

router = APIRouter()


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Health check endpoint.

    Redis being down only degrades the service: throttling fails open.

    Returns:
        Status, timestamp in ISO8601 format, and per-store status
    """
    db_healthy = await db_health_check(request.app.state.pool)
    redis_healthy = await request.app.state.counter_store.ping()

    if not db_healthy:
        overall = "unhealthy"
    elif not redis_healthy:
        overall = "degraded"
    else:
        overall = "healthy"

    return {
        "status": overall,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": "healthy" if db_healthy else "unavailable",
        "redis": "healthy" if redis_healthy else "unavailable",
    }
