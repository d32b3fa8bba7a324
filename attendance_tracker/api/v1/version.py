"""
Version and metadata endpoint
"""
from fastapi import APIRouter
from attendance_tracker.constants import DEFAULT_VERSION, SERVICE_NAME
from attendance_tracker.core.config import settings

router = APIRouter()


@router.get("/version")
async def get_version():
    """
    Get application version and metadata

    Returns:
        Version information including service name, version and environment
    """
    return {
        "service": SERVICE_NAME,
        "version": settings.VERSION or DEFAULT_VERSION,
        "env": settings.APP_ENV,
    }
