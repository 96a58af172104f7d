"""
Health check and version endpoints
"""
from fastapi import APIRouter

from attendance_api.core.config import settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """
    Health check endpoint

    Returns service status.
    """
    return {
        "status": "ok",
        "service": "attendance-api"
    }


@router.get("/version")
async def get_version():
    """
    Get application version and metadata
    """
    return {
        "service": "attendance-api",
        "version": settings.VERSION or "1.0.0",
        "env": settings.APP_ENV
    }
