"""Sync engine and scheduler exceptions."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from searchsync.adapters.base.adapter import ImportOutcome, TaskOutcome


class SyncError(Exception):
    """Base exception for synchronization errors."""


class SchemaConflict(SyncError):
    """Raised when a remote index's field set is incompatible with the desired one.

    The engine resolves it by recreating the index and forcing a full resync.
    """

    def __init__(self, index: str, changed_fields: Sequence[str]) -> None:
        self.index = index
        self.changed_fields = list(changed_fields)
        super().__init__(f"Index '{index}' schema differs on fields: {', '.join(self.changed_fields) or '(field count)'}")


class BackendTaskFailure(SyncError):
    """Raised when an asynchronous backend operation ends in a non-success state."""

    def __init__(self, index: str, failures: Sequence[TaskOutcome]) -> None:
        self.index = index
        self.failures = list(failures)
        details = "; ".join(f"task {f.uid}: {f.status.value} ({f.error or 'no error message'})" for f in self.failures)
        super().__init__(f"Backend task failure on index '{index}': {details}")


class PartialImportError(SyncError):
    """Describes records a backend rejected inside an otherwise accepted batch.

    Logged by the engine, never raised out of a run.
    """

    def __init__(self, index: str, rejected: Sequence[ImportOutcome]) -> None:
        self.index = index
        self.rejected = list(rejected)
        summary = ", ".join(f"{r.id or '?'}: {r.error}" for r in self.rejected[:10])
        more = f" (+{len(self.rejected) - 10} more)" if len(self.rejected) > 10 else ""
        super().__init__(f"{len(self.rejected)} record(s) rejected by '{index}': {summary}{more}")


class SyncCancelled(SyncError):
    """Raised at a cooperative check point when cancellation was requested."""


class JobCancelledError(SyncError):
    """Raised when waiting on a job that was cancelled before it completed."""


class ProviderNotFoundError(SyncError):
    """Raised when a requested data provider is not registered."""
