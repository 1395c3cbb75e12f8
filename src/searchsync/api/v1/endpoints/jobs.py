"""Job endpoints — Inspect queued, running, and finished jobs."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from searchsync.api.deps import get_scheduler
from searchsync.core.scheduler import JobScheduler
from searchsync.models.job import JobInfo

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/jobs", response_model=list[JobInfo], summary="List Jobs")
async def list_jobs(scheduler: JobScheduler = Depends(get_scheduler)) -> list[JobInfo]:
    """Known jobs, oldest first."""
    return scheduler.jobs()


@router.get(
    "/jobs/{job_id}",
    response_model=JobInfo,
    summary="Get Job",
    description=(
        "Return a job snapshot. With ``wait``, block up to that many seconds "
        "for the job to finish first; the snapshot is returned either way."
    ),
    responses={404: {"description": "Unknown or expired job"}},
)
async def get_job(
    job_id: str,
    wait: float | None = Query(default=None, ge=0, le=3600, description="Seconds to wait for completion"),
    scheduler: JobScheduler = Depends(get_scheduler),
) -> JobInfo:
    handle = scheduler.get(job_id)
    if handle is None:
        raise HTTPException(status_code=404, detail=f"Job '{job_id}' not found")
    if wait and not handle.done():
        try:
            await handle.wait(timeout=wait)
        except TimeoutError:
            logger.debug("Job %s still %s after %.1fs", job_id, handle.status.value, wait)
        except Exception as e:
            # Reported in the snapshot
            logger.debug("Job %s ended with %s", job_id, type(e).__name__)
    return handle.info()
