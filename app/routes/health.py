"""
Health check endpoints.
Used for monitoring, deployment readiness checks, and basic connectivity tests.
"""

from fastapi import APIRouter, Depends, HTTPException
from starlette.concurrency import run_in_threadpool

from app.models.base import utcnow
from app.routes.deps import get_coordinator
from app.services.coordinator import Coordinator


router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
async def health_check(coordinator: Coordinator = Depends(get_coordinator)):
    """
    Basic health check endpoint.
    Returns 200 if service is running.
    """
    settings = coordinator.settings
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "store": coordinator.repositories.backend,
        "fetchers": coordinator.fetchers.mode,
        "timestamp": utcnow().isoformat(),
    }


@router.get("/db")
async def database_health(coordinator: Coordinator = Depends(get_coordinator)):
    """
    Database connectivity check.
    Performs a lightweight read against the disaster store.
    """
    try:
        await run_in_threadpool(coordinator.repositories.ping)
        return {
            "status": "healthy",
            "database": coordinator.repositories.backend,
            "connected": True,
            "timestamp": utcnow().isoformat(),
        }
    except Exception as e:
        raise HTTPException(
            status_code=503,
            detail=f"Database connection failed: {str(e)}"
        )
