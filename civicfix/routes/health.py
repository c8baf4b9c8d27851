"""
Health check endpoints.
Used for monitoring, deployment readiness checks, and live-sync status.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Request

from civicfix.core.settings import settings
from civicfix.services.live_service import ws_manager


router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
async def health_check():
    """
    Basic health check endpoint.
    Returns 200 if service is running.
    """
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/db")
async def database_health(request: Request):
    """
    Database connectivity check.
    """
    backend = getattr(request.app.state, "backend", None)
    if backend is None:
        raise HTTPException(status_code=503, detail="Database backend not initialized")
    try:
        await backend.ping()
    except Exception as e:
        raise HTTPException(
            status_code=503,
            detail=f"Database connection failed: {str(e)}"
        )
    return {
        "status": "healthy",
        "database": "memory" if settings.USE_MOCK_DB else "firestore",
        "connected": True,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/sync")
async def sync_health(request: Request):
    """
    Live-sync status. `suspect` means the change stream dropped and views
    may be stale until the reconnect reload completes.
    """
    reconciler = getattr(request.app.state, "reconciler", None)
    if reconciler is None:
        return {"status": "idle", "suspect": True, "live_connections": ws_manager.connection_count}
    return {**reconciler.describe(), "live_connections": ws_manager.connection_count}
