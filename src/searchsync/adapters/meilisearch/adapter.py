"""MeiliSearch adapter — Keeps MeiliSearch indexes in sync.

MeiliSearch processes every write asynchronously: each call returns a task
(``taskUid``) that is later polled on ``/tasks/{uid}``. This adapter returns
those as ``TaskHandle`` objects so the engine can settle them all before
committing a checkpoint.

MeiliSearch has no aliases, so checkpoints are stored as metadata documents
(``{"id": <index>, "updatedAt": <epochMillis>}``) in a dedicated index.
Field settings can be changed in place; MeiliSearch re-indexes on its own.
Synonyms live in the index settings as one map, so the whole rule set is
written at once rather than rule by rule.

Communicates via the official REST API using ``httpx``.

Usage::

    adapter = MeiliSearchAdapter(
        base_url="http://localhost:7700",
        api_key="your-master-key",
        index_prefix="prod_",
    )
    await adapter.initialize()
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

import httpx

from searchsync.adapters.base.adapter import (
    AdapterHealth,
    BackendAdapter,
    BatchOutcome,
    TaskHandle,
    TaskOutcome,
    TaskStatus,
)
from searchsync.adapters.base.exceptions import ConnectionError, TransportError
from searchsync.core.checkpoint import CheckpointStrategy
from searchsync.models.field import FieldDescriptor
from searchsync.models.record import Record
from searchsync.models.synonym import OneWaySynonym, Synonym

logger = logging.getLogger(__name__)

_WILDCARD = ["*"]


def synonym_map(rules: Sequence[Synonym | OneWaySynonym]) -> dict[str, list[str]]:
    """Expand rules into MeiliSearch's ``{term: [synonyms]}`` settings map.

    A symmetric rule maps every term to each of the others. A one-way rule
    maps its root to the expansions only.
    """
    mapping: dict[str, list[str]] = {}

    def link(term: str, targets: Sequence[str]) -> None:
        entry = mapping.setdefault(term, [])
        entry.extend(t for t in targets if t != term and t not in entry)

    for rule in rules:
        if rule.root is not None:
            link(rule.root, rule.synonyms)
        else:
            for term in rule.synonyms:
                link(term, rule.synonyms)
    return {term: targets for term, targets in mapping.items() if targets}


class MeiliSearchAdapter(BackendAdapter):
    """Backend adapter for MeiliSearch.

    Communicates with MeiliSearch via its `REST API`_ over HTTP.

    .. _REST API: https://www.meilisearch.com/docs/reference/api/overview

    Args:
        base_url: MeiliSearch instance URL, e.g. ``"http://localhost:7700"``.
        api_key: Master key or API key for authentication.
        index_prefix: Prefix prepended to every index name.
        metadata_index: Unprefixed name of the checkpoint metadata index.
        timeout: HTTP request timeout in seconds.
        task_timeout: Max seconds to wait for one task to finish.
        task_poll_interval: Initial delay between task polls (doubles up to 1s).
        max_values_per_facet: Faceting limit applied to every index.
        **kwargs: Extra keyword arguments stored for future use.
    """

    checkpoint_strategy = CheckpointStrategy.METADATA
    supports_synonyms = True
    replaces_synonyms = True
    supports_schema_update = True

    def __init__(
        self,
        base_url: str = "http://localhost:7700",
        api_key: str | None = None,
        index_prefix: str = "",
        metadata_index: str = "MetaCollections",
        timeout: float = 30.0,
        task_timeout: float = 300.0,
        task_poll_interval: float = 0.05,
        max_values_per_facet: int = 1000,
        **kwargs: Any,
    ) -> None:
        super().__init__(index_prefix=index_prefix, metadata_index=metadata_index)
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._task_timeout = task_timeout
        self._task_poll_interval = task_poll_interval
        self._max_values_per_facet = max_values_per_facet
        self._extra_kwargs = kwargs
        self._client: httpx.AsyncClient | None = None

    @property
    def name(self) -> str:
        return "meilisearch"

    async def initialize(self) -> None:
        """Create an ``httpx.AsyncClient`` and verify connection to MeiliSearch."""
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(self._timeout),
            headers=headers,
        )

        try:
            resp = await self._client.get("/health")
            resp.raise_for_status()
            data = resp.json()
            if data.get("status") != "available":
                raise ConnectionError(f"MeiliSearch not available: {data}")
            logger.info("Connected to MeiliSearch at %s", self._base_url)
        except httpx.HTTPError as e:
            raise ConnectionError(f"Failed to connect to MeiliSearch: {e}") from e

    async def shutdown(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def health_check(self) -> AdapterHealth:
        """Check MeiliSearch health."""
        if not self._client:
            return AdapterHealth(status="unhealthy", message="Client not initialized")

        try:
            start = time.monotonic()
            resp = await self._client.get("/health")
            latency_ms = int((time.monotonic() - start) * 1000)

            if resp.status_code == 200:
                status = resp.json().get("status", "unknown")
                return AdapterHealth(
                    status="healthy" if status == "available" else "degraded",
                    latency_ms=latency_ms,
                    last_check=datetime.now(UTC).isoformat(),
                    message=f"status: {status}",
                )
            return AdapterHealth(
                status="degraded",
                latency_ms=latency_ms,
                last_check=datetime.now(UTC).isoformat(),
                message=f"MeiliSearch returned HTTP {resp.status_code}",
            )
        except Exception as e:
            return AdapterHealth(status="unhealthy", message=str(e))

    # ── HTTP helpers ─────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        *,
        allow_not_found: bool = False,
        **kwargs: Any,
    ) -> httpx.Response | None:
        """Send a request; ``None`` for a tolerated 404, ``TransportError`` on any other failure."""
        if not self._client:
            raise ConnectionError("MeiliSearch client not initialized.")
        try:
            resp = await self._client.request(method, path, **kwargs)
            if allow_not_found and resp.status_code == 404:
                return None
            resp.raise_for_status()
            return resp
        except httpx.HTTPError as e:
            raise TransportError(f"MeiliSearch {method} {path} failed: {e}") from e

    async def _enqueue(self, method: str, path: str, index: str, kind: str, **kwargs: Any) -> TaskHandle:
        resp = await self._request(method, path, **kwargs)
        assert resp is not None
        data = resp.json()
        uid = data.get("taskUid", data.get("uid"))
        if uid is None:
            raise TransportError(f"MeiliSearch {method} {path} returned no task: {data}")
        return TaskHandle(uid=str(uid), index=index, kind=kind)

    # ── Tasks ────────────────────────────────────────────────────────────

    async def wait_for_task(self, handle: TaskHandle) -> TaskOutcome:
        """Poll ``/tasks/{uid}`` until the task is terminal or ``task_timeout`` elapses."""
        deadline = time.monotonic() + self._task_timeout
        delay = self._task_poll_interval
        while True:
            resp = await self._request("GET", f"/tasks/{handle.uid}")
            assert resp is not None
            data = resp.json()
            status = TaskStatus(data.get("status", "enqueued"))
            if status.is_terminal:
                error = data.get("error") or {}
                return TaskOutcome(uid=handle.uid, status=status, error=error.get("message"))
            if time.monotonic() >= deadline:
                return TaskOutcome(
                    uid=handle.uid,
                    status=status,
                    error=f"timed out after {self._task_timeout:.0f}s",
                )
            await asyncio.sleep(delay)
            delay = min(delay * 2, 1.0)

    async def _settle(self, handle: TaskHandle, *, tolerate_codes: tuple[str, ...] = ()) -> None:
        """Wait for a single task and raise if it failed."""
        outcome = await self.wait_for_task(handle)
        if outcome.succeeded:
            return
        resp = await self._request("GET", f"/tasks/{handle.uid}")
        code = ((resp.json() if resp is not None else {}).get("error") or {}).get("code")
        if code in tolerate_codes:
            return
        raise TransportError(f"MeiliSearch task {handle.uid} failed: {outcome.error}")

    # ── Schema ───────────────────────────────────────────────────────────

    def _settings_for(self, fields: Sequence[FieldDescriptor]) -> dict[str, Any]:
        displayed = [f.name for f in fields if f.is_retrievable]
        searchable = [f.name for f in fields if f.is_searchable]
        return {
            "displayedAttributes": displayed or _WILDCARD,
            "searchableAttributes": searchable or _WILDCARD,
            "filterableAttributes": [f.name for f in fields if f.is_filterable or f.is_facet],
            "sortableAttributes": [f.name for f in fields if f.is_sortable],
            "faceting": {"maxValuesPerFacet": self._max_values_per_facet},
        }

    async def get_index_fields(self, index: str) -> list[FieldDescriptor] | None:
        """Rebuild field descriptors from the index settings.

        MeiliSearch does not store field types, so only the attribute lists
        are recovered.
        """
        resp = await self._request("GET", f"/indexes/{index}/settings", allow_not_found=True)
        if resp is None:
            return None
        settings = resp.json()

        def named(key: str) -> list[str]:
            values = settings.get(key) or []
            return [] if values == _WILDCARD else list(values)

        displayed, searchable = named("displayedAttributes"), named("searchableAttributes")
        filterable, sortable = named("filterableAttributes"), named("sortableAttributes")
        names = list(dict.fromkeys(displayed + searchable + filterable + sortable))
        return [
            FieldDescriptor(
                name=name,
                is_retrievable=name in displayed,
                is_searchable=name in searchable,
                is_filterable=name in filterable,
                is_sortable=name in sortable,
            )
            for name in names
        ]

    def schema_changes(self, remote: Sequence[FieldDescriptor], desired: Sequence[FieldDescriptor]) -> list[str]:
        """Compare only what MeiliSearch settings can express."""
        current, wanted = self._settings_for(remote), self._settings_for(desired)
        changed: set[str] = set()
        for key in ("displayedAttributes", "searchableAttributes", "filterableAttributes", "sortableAttributes"):
            a, b = current[key], wanted[key]
            # Searchable attribute order is ranking priority, so it counts.
            differs = a != b if key == "searchableAttributes" else set(a) != set(b)
            if differs:
                changed.update((set(a) ^ set(b)) - {"*"} or {key})
        return sorted(changed)

    async def create_index(self, index: str, fields: Sequence[FieldDescriptor]) -> TaskHandle | None:
        """Create the index, wait for it, then enqueue its settings."""
        created = await self._enqueue(
            "POST", "/indexes", index, "create_index", json={"uid": index, "primaryKey": "id"}
        )
        await self._settle(created)
        return await self.update_index(index, fields)

    async def update_index(self, index: str, fields: Sequence[FieldDescriptor]) -> TaskHandle | None:
        return await self._enqueue(
            "PATCH", f"/indexes/{index}/settings", index, "update_settings", json=self._settings_for(fields)
        )

    async def drop_index(self, index: str) -> TaskHandle | None:
        return await self._enqueue("DELETE", f"/indexes/{index}", index, "drop_index")

    # ── Documents ────────────────────────────────────────────────────────

    async def upsert_documents(self, index: str, records: Sequence[Record]) -> BatchOutcome:
        """Add or replace documents as NDJSON; rejections surface when the task is settled."""
        body = "\n".join(json.dumps(r.to_document(), default=str, ensure_ascii=False) for r in records)
        task = await self._enqueue(
            "POST",
            f"/indexes/{index}/documents",
            index,
            "upsert",
            params={"primaryKey": "id"},
            content=body.encode("utf-8"),
            headers={"Content-Type": "application/x-ndjson"},
        )
        return BatchOutcome(task=task)

    async def delete_documents(self, index: str, ids: Sequence[str]) -> TaskHandle | None:
        return await self._enqueue("POST", f"/indexes/{index}/documents/delete-batch", index, "delete", json=list(ids))

    async def count_documents(self, index: str) -> int:
        resp = await self._request("GET", f"/indexes/{index}/stats", allow_not_found=True)
        if resp is None:
            return 0
        return int(resp.json().get("numberOfDocuments", 0))

    # ── Synonyms ─────────────────────────────────────────────────────────

    async def replace_synonyms(
        self, index: str, rules: Sequence[Synonym | OneWaySynonym]
    ) -> tuple[TaskHandle | None, int, int]:
        """Write the expanded rule set to ``/indexes/{uid}/settings/synonyms``.

        Nothing is written when the stored map already matches. MeiliSearch
        stores terms lowercased, so the comparison ignores case.
        """
        desired = synonym_map(rules)
        resp = await self._request("GET", f"/indexes/{index}/settings/synonyms", allow_not_found=True)
        stored = (resp.json() if resp is not None else None) or {}

        def folded(mapping: dict[str, list[str]]) -> dict[str, frozenset[str]]:
            return {k.casefold(): frozenset(v.casefold() for v in values) for k, values in mapping.items()}

        current, wanted = folded(stored), folded(desired)
        if current == wanted:
            return None, 0, 0
        added = sum(1 for term, targets in wanted.items() if current.get(term) != targets)
        removed = sum(1 for term in current if term not in wanted)
        handle = await self._enqueue(
            "PUT", f"/indexes/{index}/settings/synonyms", index, "synonyms", json=desired
        )
        return handle, added, removed

    # ── Metadata checkpoint primitives ───────────────────────────────────

    async def get_metadata_document(self, metadata_index: str, doc_id: str) -> dict[str, Any] | None:
        resp = await self._request("GET", f"/indexes/{metadata_index}/documents/{doc_id}", allow_not_found=True)
        return resp.json() if resp is not None else None

    async def put_metadata_document(self, metadata_index: str, document: dict[str, Any]) -> None:
        handle = await self._enqueue(
            "POST",
            f"/indexes/{metadata_index}/documents",
            metadata_index,
            "metadata",
            params={"primaryKey": "id"},
            json=[document],
        )
        await self._settle(handle)

    async def delete_metadata_document(self, metadata_index: str, doc_id: str) -> None:
        handle = await self._enqueue(
            "DELETE", f"/indexes/{metadata_index}/documents/{doc_id}", metadata_index, "metadata"
        )
        await self._settle(handle, tolerate_codes=("index_not_found", "document_not_found"))
