"""Explicit-changes provider — Pushes a caller-supplied record or id set."""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator, Iterable
from datetime import datetime

from searchsync.core.streams import aiterate
from searchsync.models.field import FieldDescriptor
from searchsync.models.record import Record
from searchsync.models.synonym import OneWaySynonym, Synonym
from searchsync.providers.base import DataProvider


class ExplicitChangesProvider(DataProvider):
    """Proxy that keeps the schema of a registered provider but replaces its data.

    ``get()`` yields only *records* and ``get_deleted()`` only *ids*, whatever
    checkpoint is passed. Used by the explicit upsert and delete triggers.

    Args:
        inner: The registered provider whose name and schema are reused.
        records: Records to upsert.
        ids: Identifiers to delete.
    """

    def __init__(
        self,
        inner: DataProvider,
        *,
        records: Iterable[Record] | AsyncIterable[Record] | None = None,
        ids: Iterable[str] | AsyncIterable[str] | None = None,
    ) -> None:
        self._inner = inner
        self._records = records
        self._ids = ids

    @property
    def name(self) -> str:
        return self._inner.name

    @property
    def inner(self) -> DataProvider:
        return self._inner

    def get_fields(self) -> AsyncIterator[FieldDescriptor]:
        return self._inner.get_fields()

    def get_synonyms(self) -> AsyncIterator[Synonym | OneWaySynonym]:
        return self._inner.get_synonyms()

    async def get(self, checkpoint: datetime | None = None) -> AsyncIterator[Record]:
        if self._records is None:
            return
        async for record in aiterate(self._records):
            yield record

    async def get_deleted(self, since: datetime | None = None) -> AsyncIterator[str]:
        if self._ids is None:
            return
        async for doc_id in aiterate(self._ids):
            yield doc_id
