"""Main API router that includes all sub-routers."""

from __future__ import annotations

from fastapi import APIRouter

from sftpmirror.server.api import health, items, jobs, settings

router = APIRouter()

# Include all API routers
router.include_router(health.router)
router.include_router(settings.router)
router.include_router(items.router)
router.include_router(jobs.router)
