"""Health check endpoints for load balancers and monitoring."""

from datetime import datetime, timezone

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from changeflow.config import settings
from changeflow.utils.cache import get_redis

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Lightweight health check for load balancer (no Redis check)."""
    return {
        "status": "ok",
        "service": "changeflow-permissions",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment,
    }


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness check including the permission cache backend.

    An app with no PermissionService attached is not ready (503). Redis is
    optional for correctness (resolution falls back to uncached), so a
    failing cache reports "degraded" rather than unhealthy when the cache
    is enabled.
    """
    checks = {"service": "ok", "redis": "disabled"}
    overall = "healthy"

    if getattr(request.app.state, "permission_service", None) is None:
        checks["service"] = "not configured"
        overall = "unhealthy"

    if settings.permission_cache_enabled:
        try:
            redis_client = await get_redis()
            await redis_client.ping()
            checks["redis"] = "ok"
        except Exception as e:
            checks["redis"] = f"error: {str(e)[:100]}"
            if overall == "healthy":
                overall = "degraded"

    return JSONResponse(
        status_code=(
            status.HTTP_503_SERVICE_UNAVAILABLE
            if overall == "unhealthy"
            else status.HTTP_200_OK
        ),
        content={
            "status": overall,
            "service": "changeflow-permissions",
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
