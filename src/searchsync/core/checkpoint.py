"""Checkpoint & cutover protocol.

A checkpoint is the instant of the last fully applied sync of an index. It
is stored on the backend itself so no separate transactional store is
needed. Two strategies are supported:

  - **Alias indirection** — an alias named ``<index>-<epochMillis>`` points at
    the index. The largest epoch among the aliases targeting the index is the
    checkpoint.
  - **Metadata document** — a dedicated metadata index holds one
    ``{"id": <index>, "updatedAt": <epochMillis>}`` document per index.

Both rely on the scheduler running a single sync at a time; there are no
concurrent writers for one index.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel, Field

from searchsync.models.record import from_epoch_millis, to_epoch_millis

logger = logging.getLogger(__name__)


class CheckpointStrategy(str, Enum):
    """How a backend persists checkpoints."""

    ALIAS = "alias"
    METADATA = "metadata"


class Alias(BaseModel):
    """A backend alias record."""

    name: str = Field(description="Alias name")
    target: str = Field(description="Name of the index the alias points at")


class AliasOperations(Protocol):
    """Alias primitives required by :class:`AliasCheckpointStore`."""

    async def list_aliases(self) -> list[Alias]: ...

    async def upsert_alias(self, name: str, target: str) -> None: ...

    async def delete_alias(self, name: str) -> None: ...


class MetadataOperations(Protocol):
    """Single-document primitives required by :class:`MetadataCheckpointStore`.

    Implementations must return only after the write is durable on the backend.
    """

    async def get_metadata_document(self, metadata_index: str, doc_id: str) -> dict[str, Any] | None: ...

    async def put_metadata_document(self, metadata_index: str, document: dict[str, Any]) -> None: ...

    async def delete_metadata_document(self, metadata_index: str, doc_id: str) -> None: ...


class CheckpointStore(ABC):
    """Reads and atomically replaces the checkpoint of an index."""

    @abstractmethod
    async def read(self, index: str) -> datetime | None:
        """Return the last committed checkpoint, or ``None`` if a full resync is required."""

    @abstractmethod
    async def commit(self, index: str, instant: datetime) -> None:
        """Record *instant* as the checkpoint of *index*."""

    @abstractmethod
    async def reset(self, index: str) -> None:
        """Forget the checkpoint of *index* (the next read returns ``None``)."""


def alias_name(index: str, instant: datetime) -> str:
    """Build the versioned alias name ``<index>-<epochMillis>``."""
    return f"{index}-{to_epoch_millis(instant)}"


def parse_alias_epoch(name: str) -> int | None:
    """Parse the trailing epoch of an alias name, or ``None`` if it has none."""
    _, sep, tail = name.rpartition("-")
    if not sep or not tail.isdigit():
        return None
    return int(tail)


class AliasCheckpointStore(CheckpointStore):
    """Checkpoint store backed by versioned aliases."""

    def __init__(self, ops: AliasOperations) -> None:
        self._ops = ops

    async def _aliases_for(self, index: str) -> list[Alias]:
        return [alias for alias in await self._ops.list_aliases() if alias.target == index]

    async def read(self, index: str) -> datetime | None:
        epochs: list[int] = []
        for alias in await self._aliases_for(index):
            epoch = parse_alias_epoch(alias.name)
            if epoch is None:
                logger.debug("Ignoring alias without epoch suffix: %s", alias.name)
                continue
            epochs.append(epoch)
        if not epochs:
            return None
        return from_epoch_millis(max(epochs))

    async def commit(self, index: str, instant: datetime) -> None:
        await self.reset(index)
        name = alias_name(index, instant)
        await self._ops.upsert_alias(name, index)
        logger.info("Checkpoint for %s committed as alias %s", index, name)

    async def reset(self, index: str) -> None:
        for alias in await self._aliases_for(index):
            await self._ops.delete_alias(alias.name)


class MetadataCheckpointStore(CheckpointStore):
    """Checkpoint store backed by one document per index in a metadata index."""

    def __init__(self, ops: MetadataOperations, metadata_index: str) -> None:
        self._ops = ops
        self.metadata_index = metadata_index

    async def read(self, index: str) -> datetime | None:
        document = await self._ops.get_metadata_document(self.metadata_index, index)
        if not document:
            return None
        updated_at = document.get("updatedAt")
        if updated_at is None:
            return None
        try:
            return from_epoch_millis(int(updated_at))
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed checkpoint for %s: %r", index, updated_at)
            return None

    async def commit(self, index: str, instant: datetime) -> None:
        await self._ops.put_metadata_document(
            self.metadata_index,
            {"id": index, "updatedAt": to_epoch_millis(instant)},
        )
        logger.info("Checkpoint for %s committed to %s", index, self.metadata_index)

    async def reset(self, index: str) -> None:
        await self._ops.delete_metadata_document(self.metadata_index, index)
