"""Sync Engine — Incremental synchronization of one data provider into one backend.

A run walks these steps, each depending on the previous one succeeding:

  1. Capture the run start instant (the candidate next checkpoint)
  2. Materialize the provider's field descriptors
  3. Reconcile the index schema (create, update in place, or recreate)
  4. Read the committed checkpoint (self-healing on an empty index)
  5. Upsert changed records in batches
  6. Delete removed records in batches (incremental runs only)
  7. Reconcile synonym rules (when supported)
  8. Settle every asynchronous backend task
  9. Commit the run start instant as the new checkpoint

The checkpoint is committed only after everything else settled, so a failed
or cancelled run leaves the previous checkpoint intact and re-running from it
is safe: upserts apply by identifier and deletes tolerate absent ids.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING

from searchsync.core.exceptions import PartialImportError, SchemaConflict, SyncCancelled
from searchsync.core.streams import chunked
from searchsync.core.tasks import TaskTracker
from searchsync.models.field import FieldDescriptor, locales, validate_field_set
from searchsync.models.job import SyncReport
from searchsync.models.record import Record

if TYPE_CHECKING:
    from searchsync.adapters.base.adapter import BackendAdapter
    from searchsync.config.settings import SyncSettings
    from searchsync.core.checkpoint import CheckpointStore
    from searchsync.providers.base import DataProvider

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class SchemaAction(str, Enum):
    """What schema reconciliation did to the remote index."""

    UNCHANGED = "unchanged"
    CREATED = "created"
    UPDATED = "updated"
    RECREATED = "recreated"

    @property
    def is_new(self) -> bool:
        return self in (SchemaAction.CREATED, SchemaAction.RECREATED)


def _check_cancelled(cancel_event: asyncio.Event | None, index: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise SyncCancelled(f"Sync of '{index}' cancelled")


class SyncEngine:
    """Synchronizes data providers into backend adapters.

    Attributes:
        settings: Sync configuration (batch sizes, self-heal behavior).
    """

    def __init__(self, settings: SyncSettings) -> None:
        self.settings = settings

    # ──────────────────────────────────────────────────────────────────────
    # Incremental run
    # ──────────────────────────────────────────────────────────────────────

    async def run(
        self,
        provider: DataProvider,
        adapter: BackendAdapter,
        cancel_event: asyncio.Event | None = None,
    ) -> SyncReport:
        """Synchronize *provider* into *adapter*.

        Args:
            provider: The data provider to read from.
            adapter: The backend to write to.
            cancel_event: Cooperative cancellation signal, checked between batches.

        Returns:
            A report whose ``total`` is the number of upserted plus deleted records.

        Raises:
            BackendTaskFailure: If any backend task fails; the checkpoint is not committed.
            SyncCancelled: If *cancel_event* was set; the checkpoint is not committed.
        """
        started = time.monotonic()
        sync_start = datetime.now(UTC)
        index = adapter.index_name(provider.name)
        store = adapter.checkpoint_store()
        tracker = TaskTracker(adapter, index)
        report = SyncReport(backend=adapter.name, provider=provider.name, index=index)

        fields = validate_field_set([f async for f in provider.get_fields()])
        action = await self._reconcile_schema(adapter, store, tracker, index, fields)
        report.schema_recreated = action is SchemaAction.RECREATED

        checkpoint = None if action.is_new else await self._read_checkpoint(adapter, store, index)
        report.checkpoint = checkpoint
        report.full_resync = checkpoint is None
        logger.info(
            "%s %s: starting %s sync (checkpoint: %s)",
            adapter.name,
            index,
            "full" if checkpoint is None else "incremental",
            checkpoint.isoformat() if checkpoint else "none",
        )

        report.upserted, report.rejected = await self._upsert(
            adapter, tracker, index, provider.get(checkpoint), cancel_event
        )
        logger.info("%s %s updated with %d", adapter.name, index, report.upserted)

        if checkpoint is not None:
            report.deleted = await self._delete(adapter, tracker, index, provider.get_deleted(checkpoint), cancel_event)
        logger.info("%s %s deleted with %d", adapter.name, index, report.deleted)

        if adapter.supports_synonyms and locales(fields):
            _check_cancelled(cancel_event, index)
            report.synonyms_added, report.synonyms_removed = await self._reconcile_synonyms(
                adapter, tracker, index, provider
            )

        await tracker.settle()
        _check_cancelled(cancel_event, index)

        await store.commit(index, sync_start)
        report.new_checkpoint = sync_start
        report.took_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "%s %s synced: %d upserted, %d deleted in %d ms",
            adapter.name,
            index,
            report.upserted,
            report.deleted,
            report.took_ms,
        )
        return report

    # ──────────────────────────────────────────────────────────────────────
    # Explicit changes
    # ──────────────────────────────────────────────────────────────────────

    async def apply(
        self,
        provider: DataProvider,
        adapter: BackendAdapter,
        cancel_event: asyncio.Event | None = None,
    ) -> SyncReport:
        """Push the records and deletions a provider yields, without touching the checkpoint.

        Used for explicit upsert/delete requests: ``provider.get(None)`` is
        upserted and ``provider.get_deleted`` is deleted. Skipping the
        checkpoint keeps the next incremental run from missing changes made
        since the last full cycle.
        """
        started = time.monotonic()
        index = adapter.index_name(provider.name)
        store = adapter.checkpoint_store()
        tracker = TaskTracker(adapter, index)
        report = SyncReport(backend=adapter.name, provider=provider.name, index=index)

        fields = validate_field_set([f async for f in provider.get_fields()])
        action = await self._reconcile_schema(adapter, store, tracker, index, fields)
        report.schema_recreated = action is SchemaAction.RECREATED

        report.upserted, report.rejected = await self._upsert(
            adapter, tracker, index, provider.get(None), cancel_event
        )
        report.deleted = await self._delete(
            adapter, tracker, index, provider.get_deleted(_EPOCH), cancel_event
        )

        await tracker.settle()
        report.took_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "%s %s applied explicit changes: %d upserted, %d deleted",
            adapter.name,
            index,
            report.upserted,
            report.deleted,
        )
        return report

    # ──────────────────────────────────────────────────────────────────────
    # Steps
    # ──────────────────────────────────────────────────────────────────────

    async def _reconcile_schema(
        self,
        adapter: BackendAdapter,
        store: CheckpointStore,
        tracker: TaskTracker,
        index: str,
        fields: list[FieldDescriptor],
    ) -> SchemaAction:
        """Make the remote index match *fields*.

        A newly created or recreated index has its checkpoint reset, so the
        caller must run a full resync.
        """
        remote = await adapter.get_index_fields(index)
        if remote is None:
            logger.info("%s %s does not exist, creating", adapter.name, index)
            await store.reset(index)
            tracker.add(await adapter.create_index(index, fields))
            return SchemaAction.CREATED

        changed = adapter.schema_changes(remote, fields)
        if not changed:
            return SchemaAction.UNCHANGED

        if adapter.supports_schema_update:
            logger.info("%s %s fields changed (%s), updating in place", adapter.name, index, ", ".join(changed))
            tracker.add(await adapter.update_index(index, fields))
            return SchemaAction.UPDATED

        conflict = SchemaConflict(index, changed)
        logger.warning("%s; dropping and recreating with a full resync", conflict)
        await store.reset(index)
        tracker.add(await adapter.drop_index(index))
        await tracker.settle()
        tracker.add(await adapter.create_index(index, fields))
        return SchemaAction.RECREATED

    async def _read_checkpoint(self, adapter: BackendAdapter, store: CheckpointStore, index: str) -> datetime | None:
        checkpoint = await store.read(index)
        if checkpoint is None or not self.settings.reset_checkpoint_on_empty_index:
            return checkpoint
        if await adapter.count_documents(index) == 0:
            logger.info("%s %s is empty despite checkpoint %s, forcing full resync", adapter.name, index, checkpoint)
            return None
        return checkpoint

    async def _upsert(
        self,
        adapter: BackendAdapter,
        tracker: TaskTracker,
        index: str,
        records: AsyncIterator[Record],
        cancel_event: asyncio.Event | None,
    ) -> tuple[int, int]:
        count = 0
        rejected = 0
        async for batch in chunked(records, self.settings.upsert_batch_size):
            _check_cancelled(cancel_event, index)
            outcome = await adapter.upsert_documents(index, batch)
            tracker.add(outcome.task)
            count += len(batch)
            if outcome.rejected:
                rejected += len(outcome.rejected)
                logger.error("%s %s import error: %s", adapter.name, index, PartialImportError(index, outcome.rejected))
        return count, rejected

    async def _delete(
        self,
        adapter: BackendAdapter,
        tracker: TaskTracker,
        index: str,
        ids: AsyncIterator[str],
        cancel_event: asyncio.Event | None,
    ) -> int:
        count = 0
        async for batch in chunked(ids, self.settings.delete_batch_size):
            _check_cancelled(cancel_event, index)
            tracker.add(await adapter.delete_documents(index, batch))
            count += len(batch)
        return count

    async def _reconcile_synonyms(
        self,
        adapter: BackendAdapter,
        tracker: TaskTracker,
        index: str,
        provider: DataProvider,
    ) -> tuple[int, int]:
        """Remove remote rules no longer desired, then add desired rules missing remotely.

        Rules are matched by term set, never by identifier. Removals go first
        because a changed rule may keep its identifier.
        """
        local = [rule async for rule in provider.get_synonyms()]
        if adapter.replaces_synonyms:
            handle, added, removed = await adapter.replace_synonyms(index, local)
            tracker.add(handle)
            logger.info("%s %s synonyms: %d added, %d removed", adapter.name, index, added, removed)
            return added, removed

        remote = await adapter.list_synonyms(index)
        remote_keys = {rule.key for rule in remote}
        local_keys = {rule.key for rule in local}

        removed = 0
        for rule in remote:
            if rule.key not in local_keys:
                tracker.add(await adapter.remove_synonym(index, rule))
                remote_keys.discard(rule.key)
                removed += 1

        added = 0
        for rule in local:
            if rule.key not in remote_keys:
                tracker.add(await adapter.add_synonym(index, rule))
                remote_keys.add(rule.key)
                added += 1

        logger.info("%s %s synonyms: %d added, %d removed", adapter.name, index, added, removed)
        return added, removed
