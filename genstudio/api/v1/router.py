"""Aggregate all v1 API routers."""

from fastapi import APIRouter
from genstudio.api.v1.health import router as health_router
from genstudio.api.v1.video import router as video_router
from genstudio.api.v1.compat import router as compat_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(video_router, tags=["video"])

# Compatibility shim: mounts /functions/v1/generate-video at root
generate_video_compat = APIRouter()
generate_video_compat.include_router(compat_router, tags=["compat"])
