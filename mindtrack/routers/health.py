from fastapi import APIRouter, Depends

from mindtrack.dependencies import get_services
from mindtrack import settings
from mindtrack.setup import ClinicServices

router = APIRouter()


@router.get("/")
async def root():
    return {
        "status": "MindTrack Clinic Server is Running",
        "features": ["appointment_status", "discharge", "notifications", "realtime"],
        "endpoints": {
            "appointments": "/api/appointments",
            "patients": "/api/patients",
            "notifications": "/api/notifications",
            "reports": "/api/reports/treatment-completion",
            "realtime_ws": "/ws",
        },
    }


@router.get("/health")
async def health_check(services: ClinicServices = Depends(get_services)):
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "mindtrack",
        "port": settings.PORT,
        "connected_clients": services.hub.connected_count,
        "scheduler": services.scheduler.status(),
    }
