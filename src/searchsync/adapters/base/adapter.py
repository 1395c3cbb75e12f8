"""Base backend adapter — Abstract interface for all search engine connectors.

Every backend must implement this interface to be kept in sync. The adapter
is responsible for:
  1. Creating, comparing, updating, and dropping index schemas
  2. Upserting and deleting documents in batches
  3. Reporting asynchronous task completion
  4. Providing the checkpoint primitives of its cutover strategy
  5. Optionally managing synonym rules

The sync engine never branches on the concrete backend; differences are
expressed through the capability flags below.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, Field

from searchsync.core.checkpoint import (
    AliasCheckpointStore,
    CheckpointStore,
    CheckpointStrategy,
    MetadataCheckpointStore,
)
from searchsync.models.field import FieldDescriptor
from searchsync.models.record import Record
from searchsync.models.synonym import OneWaySynonym, Synonym


class AdapterHealth(BaseModel):
    """Health status of a backend adapter."""

    status: str = Field(description="Health status: healthy, degraded, unhealthy")
    latency_ms: int = Field(default=0, description="Latency of last health check in ms")
    last_check: str | None = Field(default=None, description="ISO timestamp of last health check")
    message: str | None = Field(default=None, description="Additional health message")


class TaskStatus(str, Enum):
    """State of an asynchronous backend operation."""

    ENQUEUED = "enqueued"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.SUCCEEDED, TaskStatus.FAILED, TaskStatus.CANCELED)


class TaskHandle(BaseModel):
    """Reference to an asynchronous backend operation."""

    uid: str = Field(description="Backend task identifier")
    index: str | None = Field(default=None, description="Index the task operates on")
    kind: str = Field(default="", description="Operation kind, for logging")


class TaskOutcome(BaseModel):
    """Terminal state of an asynchronous backend operation."""

    uid: str
    status: TaskStatus
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is TaskStatus.SUCCEEDED


class ImportOutcome(BaseModel):
    """Result of importing one record."""

    id: str | None = Field(default=None, description="Record identifier, when known")
    success: bool = Field(default=True)
    error: str | None = Field(default=None)


class BatchOutcome(BaseModel):
    """Result of one upsert batch.

    Synchronous backends report per-record ``outcomes``; asynchronous ones
    return a ``task`` to settle later (and may report no outcomes at all).
    """

    outcomes: list[ImportOutcome] = Field(default_factory=list)
    task: TaskHandle | None = Field(default=None)

    @property
    def rejected(self) -> list[ImportOutcome]:
        return [o for o in self.outcomes if not o.success]


class BackendAdapter(ABC):
    """Abstract base class for backend adapters.

    Capability flags:
      - ``checkpoint_strategy``: which cutover protocol the backend supports
      - ``supports_synonyms``: whether synonym rules can be listed and edited
      - ``replaces_synonyms``: whether synonyms are written as one whole set
        through ``replace_synonyms`` instead of rule by rule
      - ``supports_schema_update``: whether a changed field set can be applied
        in place; when false a change forces drop, recreate, and full resync

    Args:
        index_prefix: Prefix prepended to every index name (e.g. ``"prod_"``).
        metadata_index: Unprefixed metadata index name, for the metadata
            checkpoint strategy.
    """

    checkpoint_strategy: ClassVar[CheckpointStrategy] = CheckpointStrategy.METADATA
    supports_synonyms: ClassVar[bool] = False
    replaces_synonyms: ClassVar[bool] = False
    supports_schema_update: ClassVar[bool] = False

    def __init__(self, index_prefix: str = "", metadata_index: str = "MetaCollections") -> None:
        self.index_prefix = index_prefix
        self.metadata_index = metadata_index

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique adapter name (e.g., 'meilisearch', 'typesense')."""

    # ── Lifecycle ────────────────────────────────────────────────────────

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the adapter (connections, pools, etc.).

        Called once during application startup.
        """

    @abstractmethod
    async def shutdown(self) -> None:
        """Close connections and release resources."""

    @abstractmethod
    async def health_check(self) -> AdapterHealth:
        """Check the health of the search backend."""

    # ── Naming ───────────────────────────────────────────────────────────

    def index_name(self, provider_name: str) -> str:
        """Backend index name for a data provider."""
        return f"{self.index_prefix}{provider_name}"

    # ── Schema ───────────────────────────────────────────────────────────

    @abstractmethod
    async def get_index_fields(self, index: str) -> list[FieldDescriptor] | None:
        """Return the field set of an existing index, or ``None`` if the index is absent."""

    def schema_changes(self, remote: Sequence[FieldDescriptor], desired: Sequence[FieldDescriptor]) -> list[str]:
        """Names of fields whose definition differs between *remote* and *desired*.

        An empty list means the schemas are compatible. Adapters that cannot
        observe every attribute of a remote field override this.
        """
        remote_by_name = {f.name: f.signature() for f in remote}
        desired_by_name = {f.name: f.signature() for f in desired}
        changed = [
            name
            for name in sorted(set(remote_by_name) | set(desired_by_name))
            if remote_by_name.get(name) != desired_by_name.get(name)
        ]
        return changed

    @abstractmethod
    async def create_index(self, index: str, fields: Sequence[FieldDescriptor]) -> TaskHandle | None:
        """Create *index* with the given fields."""

    async def update_index(self, index: str, fields: Sequence[FieldDescriptor]) -> TaskHandle | None:
        """Apply a changed field set in place (only if ``supports_schema_update``)."""
        raise NotImplementedError(f"{self.name} does not support in-place schema updates")

    @abstractmethod
    async def drop_index(self, index: str) -> TaskHandle | None:
        """Delete *index* and all of its documents."""

    # ── Documents ────────────────────────────────────────────────────────

    @abstractmethod
    async def upsert_documents(self, index: str, records: Sequence[Record]) -> BatchOutcome:
        """Insert or replace records by identifier (last write wins).

        Must not raise because a single record was rejected; rejected records
        are reported in the returned outcomes.
        """

    @abstractmethod
    async def delete_documents(self, index: str, ids: Sequence[str]) -> TaskHandle | None:
        """Delete records by identifier, tolerating identifiers that are already absent."""

    @abstractmethod
    async def count_documents(self, index: str) -> int:
        """Number of documents currently stored in *index*."""

    # ── Tasks ────────────────────────────────────────────────────────────

    async def wait_for_task(self, handle: TaskHandle) -> TaskOutcome:
        """Block until *handle* reaches a terminal state.

        Synchronous backends never return handles and can keep this default.
        """
        return TaskOutcome(uid=handle.uid, status=TaskStatus.SUCCEEDED)

    # ── Synonyms ─────────────────────────────────────────────────────────

    async def list_synonyms(self, index: str) -> list[Synonym | OneWaySynonym]:
        raise NotImplementedError(f"{self.name} does not support synonyms")

    async def add_synonym(self, index: str, rule: Synonym | OneWaySynonym) -> TaskHandle | None:
        raise NotImplementedError(f"{self.name} does not support synonyms")

    async def remove_synonym(self, index: str, rule: Synonym | OneWaySynonym) -> TaskHandle | None:
        raise NotImplementedError(f"{self.name} does not support synonyms")

    async def replace_synonyms(
        self, index: str, rules: Sequence[Synonym | OneWaySynonym]
    ) -> tuple[TaskHandle | None, int, int]:
        """Make *rules* the complete synonym set of *index* in one write.

        Returns the task handle (``None`` when nothing changed) and the
        number of added and removed entries.
        """
        raise NotImplementedError(f"{self.name} does not replace synonyms")

    # ── Checkpoints ──────────────────────────────────────────────────────

    def checkpoint_store(self) -> CheckpointStore:
        """Checkpoint store for this backend's cutover strategy."""
        if self.checkpoint_strategy is CheckpointStrategy.ALIAS:
            return AliasCheckpointStore(self)  # type: ignore[arg-type]
        return MetadataCheckpointStore(self, f"{self.index_prefix}{self.metadata_index}")  # type: ignore[arg-type]

    def describe(self) -> dict[str, Any]:
        """Capability summary, for health and diagnostics endpoints."""
        return {
            "checkpoint_strategy": self.checkpoint_strategy.value,
            "supports_synonyms": self.supports_synonyms,
            "supports_schema_update": self.supports_schema_update,
            "index_prefix": self.index_prefix,
        }
