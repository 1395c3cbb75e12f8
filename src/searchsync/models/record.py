"""Record model and checkpoint instant helpers."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


class Record(BaseModel):
    """A single document to index.

    The ``id`` is stable across syncs and is the unit of upsert and delete.
    """

    id: str = Field(min_length=1, description="Stable record identifier")
    attributes: dict[str, Any] = Field(default_factory=dict, description="Open attribute map")

    def to_document(self) -> dict[str, Any]:
        """Flatten into the JSON document sent to a backend."""
        return {**self.attributes, "id": self.id}

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> Record:
        """Build a record from a flat document containing an ``id`` key.

        Raises:
            ValueError: If the document has no usable ``id``.
        """
        attrs = dict(document)
        raw_id = attrs.pop("id", None)
        if raw_id is None or str(raw_id) == "":
            raise ValueError("Document is missing an 'id'")
        return cls(id=str(raw_id), attributes=attrs)


def to_epoch_millis(instant: datetime) -> int:
    """Convert an instant to Unix epoch milliseconds (naive values are treated as UTC)."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    return int(instant.timestamp() * 1000)


def from_epoch_millis(value: int) -> datetime:
    """Convert Unix epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=UTC)
