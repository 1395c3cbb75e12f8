"""Base data provider — Abstract interface for canonical record sources.

A data provider is responsible for:
  1. Declaring the field set of its index
  2. Streaming records, either a full snapshot or only those changed since a
     checkpoint
  3. Streaming the identifiers of records deleted since a checkpoint
  4. Optionally declaring synonym rules

Every method returns a lazy async stream; the engine never requires the
whole dataset in memory. The provider must keep enough deletion history to
answer ``get_deleted(since)``; the engine has no other way to detect
deletions.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from datetime import datetime

from searchsync.models.field import FieldDescriptor
from searchsync.models.record import Record
from searchsync.models.synonym import OneWaySynonym, Synonym


class DataProvider(ABC):
    """Abstract base class for data providers.

    Subclasses typically implement the stream methods as async generators::

        class ProductProvider(DataProvider):
            name = "products"

            async def get_fields(self):
                yield FieldDescriptor(name="title", is_searchable=True)

            async def get(self, checkpoint=None):
                async for row in db.products(updated_since=checkpoint):
                    yield Record(id=str(row.id), attributes={"title": row.title})

            async def get_deleted(self, since):
                async for row in db.deleted_products(since):
                    yield str(row.id)
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique provider name; also the base of the backend index name."""

    @abstractmethod
    def get_fields(self) -> AsyncIterator[FieldDescriptor]:
        """Stream the field descriptors of this provider's index."""

    async def get_synonyms(self) -> AsyncIterator[Synonym | OneWaySynonym]:
        """Stream the desired synonym rules (none by default)."""
        return
        yield  # pragma: no cover

    @abstractmethod
    def get(self, checkpoint: datetime | None = None) -> AsyncIterator[Record]:
        """Stream records: all of them when *checkpoint* is ``None``, else those changed since it."""

    @abstractmethod
    def get_deleted(self, since: datetime) -> AsyncIterator[str]:
        """Stream identifiers of records removed since *since*."""
