"""
Health Check Routes

Endpoints for service health monitoring.
"""
from fastapi import APIRouter
from datetime import datetime, timezone

from ..services.engine_service import get_engine_service

router = APIRouter(prefix="/health", tags=["health"])


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("")
@router.get("/")
async def health_check():
    """Basic health check endpoint"""
    return {
        "status": "healthy",
        "service": "civic-timeslot",
        "timestamp": _timestamp()
    }


@router.get("/ready")
async def readiness_check():
    """
    Readiness check - indicates if service is ready to handle requests.
    Used by Kubernetes/orchestrators for readiness probes.
    """
    engine = get_engine_service()
    return {
        "ready": engine.is_initialized,
        "expansion_running": engine.expansion_scheduler.is_running,
        "timestamp": _timestamp()
    }


@router.get("/live")
async def liveness_check():
    """
    Liveness check - indicates if service is running.
    Used by Kubernetes/orchestrators for liveness probes.
    """
    return {
        "alive": True,
        "timestamp": _timestamp()
    }
