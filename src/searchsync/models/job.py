"""Job and sync-run result models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class JobKind(str, Enum):
    """What a queued job does."""

    SYNC = "sync"
    UPSERT = "upsert"
    DELETE = "delete"


class JobStatus(str, Enum):
    """Lifecycle state of a queued job."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELLED)


class SyncReport(BaseModel):
    """Outcome of synchronizing one data provider into one backend."""

    backend: str = Field(description="Backend adapter name")
    provider: str = Field(description="Data provider name")
    index: str = Field(description="Backend index name")
    checkpoint: datetime | None = Field(default=None, description="Checkpoint the run started from")
    new_checkpoint: datetime | None = Field(default=None, description="Checkpoint committed by the run")
    full_resync: bool = Field(default=False, description="Whether the run sent a full snapshot")
    schema_recreated: bool = Field(default=False, description="Whether the index was dropped and recreated")
    upserted: int = Field(default=0, description="Records sent for upsert")
    deleted: int = Field(default=0, description="Identifiers sent for deletion")
    rejected: int = Field(default=0, description="Records the backend rejected")
    synonyms_added: int = Field(default=0)
    synonyms_removed: int = Field(default=0)
    took_ms: int = Field(default=0, description="Wall-clock duration of the run")

    @property
    def total(self) -> int:
        return self.upserted + self.deleted


class JobInfo(BaseModel):
    """Public snapshot of a queued job."""

    id: str = Field(description="Job identifier")
    kind: JobKind = Field(description="Job kind")
    providers: list[str] | None = Field(default=None, description="Target providers (None = all)")
    status: JobStatus = Field(description="Current job status")
    created_at: datetime = Field(description="When the job was queued")
    started_at: datetime | None = Field(default=None)
    finished_at: datetime | None = Field(default=None)
    affected: int = Field(default=0, description="Upserted plus deleted records across all runs")
    reports: list[SyncReport] = Field(default_factory=list, description="Per-run reports")
    error: str | None = Field(default=None, description="Failure message, if any")
