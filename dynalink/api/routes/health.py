"""Health check endpoints for monitoring application status."""

import time

from fastapi import APIRouter, Request, status

from dynalink.core.config import settings
from dynalink.db.base import DatabaseHealthCheck

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    status_code=status.HTTP_200_OK,
    summary="Get system health status",
    response_description="Health status of all system components"
)
async def health_check(request: Request):
    """Check health of all system components."""
    health_status = {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT.value,
        "timestamp": time.time(),
        "components": {}
    }

    database = await DatabaseHealthCheck.check_connection(request.app.state.session_factory)
    health_status["components"]["database"] = database
    if database["status"] != "healthy":
        health_status["status"] = "degraded"

    redis_manager = getattr(request.app.state, "redis_manager", None)
    if redis_manager is not None:
        start_time = time.perf_counter()
        if await redis_manager.ping():
            health_status["components"]["redis"] = {
                "status": "healthy",
                "latency_ms": round((time.perf_counter() - start_time) * 1000, 2)
            }
        else:
            health_status["status"] = "degraded"
            health_status["components"]["redis"] = {
                "status": "unhealthy",
                "error": "Redis ping failed"
            }

    return health_status


@router.get(
    "/health/ready",
    status_code=status.HTTP_200_OK,
    summary="Readiness probe",
    response_description="Application readiness status"
)
async def readiness_probe(request: Request):
    """Check if application is ready to handle requests."""
    database = await DatabaseHealthCheck.check_connection(request.app.state.session_factory)
    components_status = {"api": True, "database": database["status"] == "healthy"}

    return {
        "ready": all(components_status.values()),
        "components": components_status
    }


@router.get(
    "/health/live",
    status_code=status.HTTP_200_OK,
    summary="Liveness probe",
    response_description="Application liveness status"
)
async def liveness_probe():
    """Simple check that application is running."""
    return {"alive": True}
