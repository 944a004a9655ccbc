"""
Health check endpoints for monitoring and orchestration.
"""

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends

from transit_eta.config import get_settings
from transit_eta.routers.arrivals import get_arrival_service
from transit_eta.services.arrivals import ArrivalService

logger = structlog.get_logger()
settings = get_settings()
router = APIRouter()


@router.get("/health/live")
async def liveness_check():
    """Basic liveness check - is the process running?"""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc),
        "service": settings.app_name,
        "version": settings.app_version,
    }


@router.get("/health/ready")
async def readiness_check(service: ArrivalService = Depends(get_arrival_service)):
    """
    Readiness check - can we serve traffic?

    Live feeds are not contacted here. Missing schedule snapshots degrade
    fallback quality but do not make the service unready.
    """
    snapshots = service.schedules.available()
    missing = [family for family, ok in snapshots.items() if not ok]
    if missing:
        logger.info("Schedule snapshots missing, static tables in use", families=missing)

    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc),
        "checks": {
            "adapters": sorted(mode.value for mode in service.adapters),
            "schedule_snapshots": snapshots,
        },
    }
