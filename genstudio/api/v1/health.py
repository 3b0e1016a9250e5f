"""Health check endpoint."""

from fastapi import APIRouter
import platform
import sys

from genstudio.config import settings

router = APIRouter()

# Set by main.py during lifespan
_dispatcher = None


def set_dispatcher(dispatcher):
    global _dispatcher
    _dispatcher = dispatcher


@router.get("/health")
async def health_check():
    """Service health and background job activity."""
    return {
        "status": "healthy",
        "video_provider": settings.video_provider,
        "job_store": settings.job_store,
        "dispatcher_running": _dispatcher is not None,
        "active_jobs": _dispatcher.active_count() if _dispatcher is not None else 0,
        "python_version": sys.version,
        "platform": platform.platform(),
    }
