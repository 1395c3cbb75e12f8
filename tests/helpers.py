"""Test doubles shared across the suite."""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock

import httpx

from searchsync.models.field import FieldDescriptor, FieldType
from searchsync.models.record import Record
from searchsync.models.synonym import OneWaySynonym, Synonym
from searchsync.providers.base import DataProvider

PAST = datetime(2024, 1, 1, tzinfo=UTC)


def later() -> datetime:
    """An instant safely after any checkpoint committed so far."""
    return datetime.now(UTC) + timedelta(minutes=1)


DEFAULT_FIELDS = [
    FieldDescriptor(name="title", is_searchable=True, locale="en"),
    FieldDescriptor(name="category", is_facet=True, is_filterable=True),
    FieldDescriptor(name="price", type=FieldType.FLOAT, is_sortable=True),
]


class RecordingProvider(DataProvider):
    """Data provider over in-memory rows with a deletion log.

    Records every checkpoint it is asked for, so tests can assert which
    phases the engine ran.
    """

    def __init__(
        self,
        name: str = "products",
        fields: list[FieldDescriptor] | None = None,
        synonyms: list[Synonym | OneWaySynonym] | None = None,
    ) -> None:
        self._name = name
        self.fields = list(DEFAULT_FIELDS if fields is None else fields)
        self.synonyms = list(synonyms or [])
        self.rows: dict[str, tuple[datetime, dict[str, Any]]] = {}
        self.deletions: list[tuple[datetime, str]] = []
        self.get_calls: list[datetime | None] = []
        self.get_deleted_calls: list[datetime] = []

    @property
    def name(self) -> str:
        return self._name

    def put(self, doc_id: str, at: datetime = PAST, **attributes: Any) -> None:
        self.rows[doc_id] = (at, attributes)

    def remove(self, doc_id: str, at: datetime = PAST) -> None:
        self.rows.pop(doc_id, None)
        self.deletions.append((at, doc_id))

    async def get_fields(self) -> AsyncIterator[FieldDescriptor]:
        for field in self.fields:
            yield field

    async def get_synonyms(self) -> AsyncIterator[Synonym | OneWaySynonym]:
        for rule in self.synonyms:
            yield rule

    async def get(self, checkpoint: datetime | None = None) -> AsyncIterator[Record]:
        self.get_calls.append(checkpoint)
        for doc_id, (at, attributes) in list(self.rows.items()):
            if checkpoint is None or at >= checkpoint:
                yield Record(id=doc_id, attributes=attributes)

    async def get_deleted(self, since: datetime) -> AsyncIterator[str]:
        self.get_deleted_calls.append(since)
        for at, doc_id in self.deletions:
            if at >= since:
                yield doc_id




class RoutedClient:
    """Stand-in for ``httpx.AsyncClient`` answering from a route table.

    Each ``(method, path)`` route holds a queue of responses; the last one is
    repeated once the queue is down to a single entry. Every call is recorded
    in ``calls`` as ``(method, path, kwargs)``.
    """

    def __init__(self, base_url: str = "http://backend") -> None:
        self.base_url = base_url
        self.routes: dict[tuple[str, str], list[tuple[int, Any]]] = {}
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def add(self, method: str, path: str, payload: Any = None, status: int = 200) -> RoutedClient:
        self.routes.setdefault((method, path), []).append((status, payload))
        return self

    def mock(self) -> AsyncMock:
        async def get(path: str, **kwargs: Any) -> httpx.Response:
            return await self.request("GET", path, **kwargs)

        client = AsyncMock(spec=httpx.AsyncClient)
        client.request.side_effect = self.request
        client.get.side_effect = get
        return client

    def paths(self, method: str | None = None) -> list[str]:
        return [path for m, path, _ in self.calls if method is None or m == method]

    def last(self, method: str, path: str) -> dict[str, Any]:
        for m, p, kwargs in reversed(self.calls):
            if (m, p) == (method, path):
                return kwargs
        raise AssertionError(f"{method} {path} was never called")

    async def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        self.calls.append((method, path, kwargs))
        queue = self.routes.get((method, path))
        if not queue:
            status, payload = 404, {"message": f"{path} not found"}
        elif len(queue) > 1:
            status, payload = queue.pop(0)
        else:
            status, payload = queue[0]
        request = httpx.Request(method, f"{self.base_url}{path}")
        if isinstance(payload, str):
            return httpx.Response(status, text=payload, request=request)
        return httpx.Response(status, json=payload if payload is not None else {}, request=request)
