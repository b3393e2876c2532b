"""
Health check and status endpoints
"""
from fastapi import APIRouter

from gsc_pipeline import __version__
from gsc_pipeline.config import get_settings
from gsc_pipeline.utils.helpers import utcnow

settings = get_settings()

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "version": __version__
    }


@router.get("/status")
async def get_status():
    """Get system status"""
    return {
        "app_name": settings.app_name,
        "version": __version__,
        "environment": settings.environment,
        "scheduler_enabled": settings.scheduler_enabled,
        "limits": {
            "indexing_batch_size": settings.indexing_batch_size,
            "indexing_daily_limit": settings.indexing_daily_limit,
            "inspection_batch_size": settings.inspection_batch_size,
            "inspection_staleness_hours": settings.inspection_staleness_hours,
        },
        "timestamp": utcnow().isoformat()
    }
