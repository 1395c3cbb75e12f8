"""In-memory adapter — A complete backend held in process memory.

Useful for local development and for exercising the sync engine without a
running search server. Every capability is configurable so either checkpoint
strategy and both schema-change behaviors can be tried:

    adapter = MemoryAdapter(checkpoint_strategy="metadata", asynchronous_tasks=True)
    await adapter.initialize()

Failure injection:
  - ``reject_ids``: record ids the backend rejects on import
  - ``fail_task_kinds``: operation kinds (``"upsert"``, ``"delete"``,
    ``"create_index"``, ...) whose tasks end in ``failed``; the operation is
    not applied
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Any

from searchsync.adapters.base.adapter import (
    AdapterHealth,
    BackendAdapter,
    BatchOutcome,
    ImportOutcome,
    TaskHandle,
    TaskOutcome,
    TaskStatus,
)
from searchsync.adapters.base.exceptions import IndexNotFoundError
from searchsync.core.checkpoint import Alias, CheckpointStrategy
from searchsync.models.field import FieldDescriptor
from searchsync.models.record import Record
from searchsync.models.synonym import OneWaySynonym, Synonym

logger = logging.getLogger(__name__)


class MemoryIndex:
    """Fields, documents, and synonym rules of one in-memory index."""

    def __init__(self, fields: Sequence[FieldDescriptor]) -> None:
        self.fields = list(fields)
        self.documents: dict[str, dict[str, Any]] = {}
        self.synonyms: dict[str, Synonym | OneWaySynonym] = {}


class MemoryAdapter(BackendAdapter):
    """Backend adapter storing everything in dictionaries.

    Args:
        index_prefix: Prefix prepended to every index name.
        metadata_index: Metadata index name (metadata checkpoint strategy).
        checkpoint_strategy: ``"alias"`` or ``"metadata"``.
        supports_synonyms: Whether synonym reconciliation is available.
        supports_schema_update: Whether changed fields are applied in place.
        asynchronous_tasks: Return task handles that settle on ``wait_for_task``
            instead of applying operations synchronously.
        reject_ids: Record ids rejected on import.
        fail_task_kinds: Operation kinds whose tasks fail.
        name: Adapter name reported to the registry.
    """

    def __init__(
        self,
        index_prefix: str = "",
        metadata_index: str = "MetaCollections",
        *,
        checkpoint_strategy: str | CheckpointStrategy = CheckpointStrategy.ALIAS,
        supports_synonyms: bool = True,
        supports_schema_update: bool = False,
        asynchronous_tasks: bool = False,
        reject_ids: Iterable[str] = (),
        fail_task_kinds: Iterable[str] = (),
        name: str = "memory",
        **kwargs: Any,
    ) -> None:
        super().__init__(index_prefix=index_prefix, metadata_index=metadata_index)
        self.checkpoint_strategy = CheckpointStrategy(checkpoint_strategy)  # type: ignore[misc]
        self.supports_synonyms = supports_synonyms  # type: ignore[misc]
        self.supports_schema_update = supports_schema_update  # type: ignore[misc]
        self.asynchronous_tasks = asynchronous_tasks
        self.reject_ids = set(reject_ids)
        self.fail_task_kinds = set(fail_task_kinds)
        self._name = name
        self._extra_kwargs = kwargs

        self.indexes: dict[str, MemoryIndex] = {}
        self.aliases: dict[str, str] = {}
        self.metadata: dict[str, dict[str, dict[str, Any]]] = {}
        self.operations: list[tuple[str, str, int]] = []
        self._tasks: dict[str, tuple[TaskStatus, Any]] = {}
        self._task_ids = itertools.count(1)
        self._initialized = False

    @property
    def name(self) -> str:
        return self._name

    async def initialize(self) -> None:
        self._initialized = True
        logger.info("In-memory backend ready (strategy: %s)", self.checkpoint_strategy.value)

    async def shutdown(self) -> None:
        self._initialized = False

    async def health_check(self) -> AdapterHealth:
        return AdapterHealth(
            status="healthy" if self._initialized else "unhealthy",
            last_check=datetime.now(UTC).isoformat(),
            message=f"{len(self.indexes)} index(es)",
        )

    # ── Task simulation ──────────────────────────────────────────────────

    def _submit(self, kind: str, index: str, size: int, apply: Any) -> TaskHandle | None:
        """Run or defer *apply* depending on the task mode."""
        self.operations.append((kind, index, size))
        failed = kind in self.fail_task_kinds
        if not self.asynchronous_tasks:
            if failed:
                uid = str(next(self._task_ids))
                self._tasks[uid] = (TaskStatus.FAILED, None)
                return TaskHandle(uid=uid, index=index, kind=kind)
            apply()
            return None
        uid = str(next(self._task_ids))
        self._tasks[uid] = (TaskStatus.FAILED if failed else TaskStatus.ENQUEUED, None if failed else apply)
        return TaskHandle(uid=uid, index=index, kind=kind)

    async def wait_for_task(self, handle: TaskHandle) -> TaskOutcome:
        status, apply = self._tasks.get(handle.uid, (TaskStatus.FAILED, None))
        if status is TaskStatus.ENQUEUED:
            apply()
            status = TaskStatus.SUCCEEDED
            self._tasks[handle.uid] = (status, None)
        error = None if status is TaskStatus.SUCCEEDED else f"{handle.kind} task failed"
        return TaskOutcome(uid=handle.uid, status=status, error=error)

    def _require(self, index: str) -> MemoryIndex:
        try:
            return self.indexes[index]
        except KeyError:
            raise IndexNotFoundError(f"Index '{index}' not found") from None

    # ── Schema ───────────────────────────────────────────────────────────

    async def get_index_fields(self, index: str) -> list[FieldDescriptor] | None:
        found = self.indexes.get(index)
        return list(found.fields) if found is not None else None

    async def create_index(self, index: str, fields: Sequence[FieldDescriptor]) -> TaskHandle | None:
        def apply() -> None:
            self.indexes[index] = MemoryIndex(fields)

        return self._submit("create_index", index, len(fields), apply)

    async def update_index(self, index: str, fields: Sequence[FieldDescriptor]) -> TaskHandle | None:
        def apply() -> None:
            self._require(index).fields = list(fields)

        return self._submit("update_index", index, len(fields), apply)

    async def drop_index(self, index: str) -> TaskHandle | None:
        def apply() -> None:
            self.indexes.pop(index, None)

        return self._submit("drop_index", index, 0, apply)

    # ── Documents ────────────────────────────────────────────────────────

    async def upsert_documents(self, index: str, records: Sequence[Record]) -> BatchOutcome:
        accepted = [r for r in records if r.id not in self.reject_ids]
        outcomes = [
            ImportOutcome(id=r.id, success=r.id not in self.reject_ids, error=None if r.id not in self.reject_ids else "rejected")
            for r in records
        ]

        def apply() -> None:
            target = self.indexes.setdefault(index, MemoryIndex([]))
            for record in accepted:
                target.documents[record.id] = record.to_document()

        task = self._submit("upsert", index, len(records), apply)
        return BatchOutcome(outcomes=outcomes, task=task)

    async def delete_documents(self, index: str, ids: Sequence[str]) -> TaskHandle | None:
        def apply() -> None:
            target = self._require(index)
            for doc_id in ids:
                target.documents.pop(doc_id, None)

        return self._submit("delete", index, len(ids), apply)

    async def count_documents(self, index: str) -> int:
        found = self.indexes.get(index)
        return len(found.documents) if found is not None else 0

    # ── Synonyms ─────────────────────────────────────────────────────────

    async def list_synonyms(self, index: str) -> list[Synonym | OneWaySynonym]:
        # A deferred create_index has not been applied yet
        found = self.indexes.get(index)
        return list(found.synonyms.values()) if found is not None else []

    async def add_synonym(self, index: str, rule: Synonym | OneWaySynonym) -> TaskHandle | None:
        def apply() -> None:
            self._require(index).synonyms[rule.rule_id] = rule

        return self._submit("add_synonym", index, 1, apply)

    async def remove_synonym(self, index: str, rule: Synonym | OneWaySynonym) -> TaskHandle | None:
        def apply() -> None:
            self._require(index).synonyms.pop(rule.rule_id, None)

        return self._submit("remove_synonym", index, 1, apply)

    # ── Alias checkpoint primitives ──────────────────────────────────────

    async def list_aliases(self) -> list[Alias]:
        return [Alias(name=name, target=target) for name, target in self.aliases.items()]

    async def upsert_alias(self, name: str, target: str) -> None:
        self.aliases[name] = target

    async def delete_alias(self, name: str) -> None:
        self.aliases.pop(name, None)

    # ── Metadata checkpoint primitives ───────────────────────────────────

    async def get_metadata_document(self, metadata_index: str, doc_id: str) -> dict[str, Any] | None:
        return self.metadata.get(metadata_index, {}).get(doc_id)

    async def put_metadata_document(self, metadata_index: str, document: dict[str, Any]) -> None:
        self.metadata.setdefault(metadata_index, {})[str(document["id"])] = dict(document)

    async def delete_metadata_document(self, metadata_index: str, doc_id: str) -> None:
        self.metadata.get(metadata_index, {}).pop(doc_id, None)
