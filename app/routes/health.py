"""
Health check endpoints.
Used for monitoring, deployment readiness checks, and basic connectivity tests.
"""

from fastapi import APIRouter, Depends, HTTPException
from app.dependencies import ServiceContainer, get_container
from app.models.base import utc_now


router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
async def health_check(container: ServiceContainer = Depends(get_container)):
    """
    Basic health check endpoint.
    Returns 200 if service is running.
    """
    return {
        "status": "healthy",
        "service": container.config.APP_NAME,
        "version": container.config.APP_VERSION,
        "timestamp": utc_now().isoformat()
    }


@router.get("/db")
async def database_health(container: ServiceContainer = Depends(get_container)):
    """
    Storage connectivity check.
    For Firestore, performs a lightweight read against the issues collection.
    """
    backend = container.repositories.backend
    try:
        await container.repositories.issues.list_issues(limit=1)
    except Exception as e:
        raise HTTPException(
            status_code=503,
            detail=f"Database connection failed: {str(e)}"
        )

    return {
        "status": "healthy",
        "database": backend,
        "connected": True,
        "timestamp": utc_now().isoformat()
    }
