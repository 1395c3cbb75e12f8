"""API v1 Router — Sync trigger, job, and health endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from searchsync.api.v1.endpoints.health import router as health_router
from searchsync.api.v1.endpoints.jobs import router as jobs_router
from searchsync.api.v1.endpoints.sync import router as sync_router

router = APIRouter(tags=["v1"])
router.include_router(sync_router)
router.include_router(jobs_router)
router.include_router(health_router)
