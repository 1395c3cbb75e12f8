"""Sync trigger endpoints — Queue full, per-provider, and explicit-change jobs.

Every endpoint only queues a job and answers ``202 Accepted`` with its
snapshot; poll ``GET /v1/jobs/{id}`` (optionally with ``?wait=``) for the
outcome.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from searchsync.api.deps import get_scheduler
from searchsync.core.scheduler import JobScheduler
from searchsync.models.job import JobInfo
from searchsync.models.record import Record

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Request / response models ────────────────────────────────────────────


class UpsertRequest(BaseModel):
    """Documents to upsert; each must carry an ``id``."""

    documents: list[dict[str, Any]] = Field(description="Flat documents with an 'id' key")


class DeleteRequest(BaseModel):
    """Identifiers to delete."""

    ids: list[str] = Field(description="Record identifiers")


class ProvidersResponse(BaseModel):
    """Registered data providers."""

    providers: list[str] = Field(description="Provider names, in sync order")


# ── Endpoints ────────────────────────────────────────────────────────────


@router.post(
    "/sync",
    response_model=JobInfo,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Sync All Providers",
    description="Queue an incremental sync of every registered data provider into every active backend.",
)
async def sync_all(scheduler: JobScheduler = Depends(get_scheduler)) -> JobInfo:
    return scheduler.sync_all().info()


@router.post(
    "/sync/{provider}",
    response_model=JobInfo,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Sync One Provider",
    responses={404: {"description": "Unknown data provider"}},
)
async def sync_provider(provider: str, scheduler: JobScheduler = Depends(get_scheduler)) -> JobInfo:
    """Queue an incremental sync of a single data provider."""
    return scheduler.sync(provider).info()


@router.post(
    "/providers/{provider}/documents",
    response_model=JobInfo,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Upsert Documents",
    description=(
        "Queue an upsert of the given documents into the provider's indexes. "
        "The provider's checkpoint is not advanced."
    ),
    responses={404: {"description": "Unknown data provider"}, 422: {"description": "A document has no id"}},
)
async def upsert_documents(
    provider: str,
    request: UpsertRequest,
    scheduler: JobScheduler = Depends(get_scheduler),
) -> JobInfo:
    try:
        records = [Record.from_document(doc) for doc in request.documents]
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return scheduler.upsert(provider, records).info()


@router.post(
    "/providers/{provider}/documents/delete",
    response_model=JobInfo,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Delete Documents",
    responses={404: {"description": "Unknown data provider"}},
)
async def delete_documents(
    provider: str,
    request: DeleteRequest,
    scheduler: JobScheduler = Depends(get_scheduler),
) -> JobInfo:
    """Queue a deletion of the given identifiers from the provider's indexes."""
    return scheduler.delete(provider, request.ids).info()


@router.get("/providers", response_model=ProvidersResponse, summary="List Data Providers")
async def list_providers(scheduler: JobScheduler = Depends(get_scheduler)) -> ProvidersResponse:
    return ProvidersResponse(providers=scheduler.providers.names)
