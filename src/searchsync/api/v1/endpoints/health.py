"""Health check endpoints — System and backend health monitoring."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from searchsync import __version__
from searchsync.adapters.base.adapter import AdapterHealth
from searchsync.api.deps import get_scheduler
from searchsync.core.scheduler import JobScheduler

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Response models ──────────────────────────────────────────────────────


class HealthResponse(BaseModel):
    """System health check response."""

    status: str = Field(description="Health status (e.g. 'healthy')")
    version: str = Field(description="SearchSync server version")
    service: str = Field(description="Service name ('searchsync')")
    worker_running: bool = Field(description="Whether the sync worker is consuming jobs")
    active_backends: list[str] = Field(description="Currently active backend names")
    providers: list[str] = Field(description="Registered data provider names")


class BackendHealthResponse(BaseModel):
    """Per-backend health and capabilities."""

    backends: dict[str, AdapterHealth] = Field(description="Map of backend name to its health status")
    capabilities: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        description="Map of backend name to its checkpoint strategy and feature flags",
    )


# ── Endpoints ────────────────────────────────────────────────────────────


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="System Health Check",
    description="Returns overall health, server version, worker state, backends, and providers.",
)
async def health_check(scheduler: JobScheduler = Depends(get_scheduler)) -> HealthResponse:
    running = scheduler.running
    return HealthResponse(
        status="healthy" if running else "degraded",
        version=__version__,
        service="searchsync",
        worker_running=running,
        active_backends=scheduler.adapters.names,
        providers=scheduler.providers.names,
    )


@router.get(
    "/health/backends",
    response_model=BackendHealthResponse,
    summary="Backend Health Check",
    description="Run health checks on every active backend and report its capabilities.",
)
async def backend_health(scheduler: JobScheduler = Depends(get_scheduler)) -> BackendHealthResponse:
    statuses = await scheduler.adapters.check_health()
    capabilities = {adapter.name: adapter.describe() for adapter in scheduler.adapters.active()}
    return BackendHealthResponse(backends=statuses, capabilities=capabilities)
