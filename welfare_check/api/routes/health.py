"""
Health check endpoints
"""

from fastapi import APIRouter, Request

from welfare_check.core.config import settings
from welfare_check.models.call import utcnow

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """
    Basic health check endpoint
    """
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "environment": settings.environment
    }


@router.get("/ready")
async def readiness_check(request: Request):
    """
    Readiness check - verifies the call record store is up
    """
    store = getattr(request.app.state, "store", None)
    store_ready = (
        bool(getattr(request.app.state, "store_ready", False))
        and store is not None
        and store.is_ready()
    )
    return {
        "status": "ready" if store_ready else "degraded",
        "timestamp": utcnow().isoformat(),
        "checks": {"store": store_ready},
        "store_backend": settings.store_backend
    }
