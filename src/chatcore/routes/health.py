"""
Health Check Routes

Endpoints for service health monitoring.
"""
from datetime import datetime

from fastapi import APIRouter, Depends

from ..services.engine_service import EngineService
from .auth import get_engine

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
@router.get("/")
async def health_check():
    """Basic health check endpoint"""
    return {
        "status": "healthy",
        "service": "chatcore",
        "timestamp": datetime.utcnow().isoformat()
    }


@router.get("/ready")
async def readiness_check(engine: EngineService = Depends(get_engine)):
    """
    Readiness check - storages connected and change listener running.
    Used by orchestrators for readiness checks.
    """
    listener = engine.change_listener
    return {
        "ready": engine.is_initialized,
        "change_feed": listener.is_running if listener is not None else None,
        "timestamp": datetime.utcnow().isoformat()
    }


@router.get("/live")
async def liveness_check():
    """Liveness check - indicates if service is running"""
    return {
        "alive": True,
        "timestamp": datetime.utcnow().isoformat()
    }
