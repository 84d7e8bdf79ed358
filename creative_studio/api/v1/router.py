"""Aggregate all v1 API routers."""

from fastapi import APIRouter
from creative_studio.api.v1.health import router as health_router
from creative_studio.api.v1.lipsync import router as lipsync_router
from creative_studio.api.v1.style_jobs import router as style_jobs_router
from creative_studio.api.v1.webhooks import router as webhooks_router
from creative_studio.api.v1.jobs import router as jobs_router
from creative_studio.api.v1.gallery import router as gallery_router
from creative_studio.api.v1.templates import router as templates_router
from creative_studio.api.v1.events import router as events_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(lipsync_router, tags=["lipsync"])
v1_router.include_router(style_jobs_router, tags=["style-jobs"])
v1_router.include_router(webhooks_router, tags=["webhooks"])
v1_router.include_router(jobs_router, tags=["jobs"])
v1_router.include_router(gallery_router, tags=["gallery"])
v1_router.include_router(templates_router, tags=["templates"])
v1_router.include_router(events_router, tags=["events"])
