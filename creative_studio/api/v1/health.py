"""Health check endpoint."""

import platform
import sys

from fastapi import APIRouter

from creative_studio.api import deps
from creative_studio.config import settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """Service health and which processors are wired in."""
    services = deps.peek_services()
    return {
        "status": "healthy" if services is not None else "starting",
        "job_store_backend": settings.job_store_backend,
        "storage_backend": settings.storage_backend,
        "lipsync_enabled": bool(services and services.lipsync_submitter),
        "lipsync_reconcile_mode": settings.lipsync_reconcile_mode,
        "image_generation_enabled": bool(services and services.worker),
        "python_version": sys.version,
        "platform": platform.platform(),
    }
