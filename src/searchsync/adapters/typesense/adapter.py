"""Typesense adapter — Keeps Typesense collections in sync.

Typesense applies writes synchronously and reports per-document import
results, so this adapter never returns task handles. Checkpoints are stored
as collection aliases named ``<collection>-<epochMillis>``. A collection's
field set cannot be changed in place here, so a changed schema makes the
engine drop and recreate the collection.

Synonyms are managed per collection through ``/collections/{name}/synonyms``.

Communicates via the REST API using ``httpx``.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

import httpx

from searchsync.adapters.base.adapter import AdapterHealth, BackendAdapter, BatchOutcome, ImportOutcome, TaskHandle
from searchsync.adapters.base.exceptions import ConnectionError, TransportError
from searchsync.core.checkpoint import Alias, CheckpointStrategy
from searchsync.models.field import FieldDescriptor, FieldType
from searchsync.models.record import Record
from searchsync.models.synonym import OneWaySynonym, Synonym

logger = logging.getLogger(__name__)

_TYPE_NAMES: dict[FieldType, str] = {
    FieldType.STRING: "string",
    FieldType.INT32: "int32",
    FieldType.INT64: "int64",
    FieldType.FLOAT: "float",
    FieldType.BOOL: "bool",
    FieldType.OBJECT: "object",
}


def field_type_name(field: FieldDescriptor) -> str:
    """Typesense type for *field* (``"auto"`` when unknown)."""
    if field.type is FieldType.UNKNOWN:
        return "auto"
    name = _TYPE_NAMES[field.type]
    return f"{name}[]" if field.is_array else name


def parse_field_type(name: str) -> tuple[FieldType, bool]:
    """Inverse of :func:`field_type_name`; unrecognized types map to ``UNKNOWN``."""
    is_array = name.endswith("[]")
    base = name[:-2] if is_array else name
    for field_type, type_name in _TYPE_NAMES.items():
        if type_name == base:
            return field_type, is_array
    return FieldType.UNKNOWN, is_array


def field_schema(field: FieldDescriptor) -> dict[str, Any]:
    """Typesense field definition for a descriptor."""
    schema: dict[str, Any] = {
        "name": field.name,
        "type": field_type_name(field),
        "facet": field.is_facet,
        "optional": not field.is_sortable,
        "index": field.is_facet or field.is_filterable or field.is_searchable or field.is_sortable,
        "sort": field.is_sortable,
    }
    if field.locale:
        schema["locale"] = field.locale
    return schema


def _comparable(schema: dict[str, Any]) -> tuple[Any, ...]:
    return (
        schema["name"],
        schema["type"],
        bool(schema.get("facet")),
        bool(schema.get("index", True)),
        bool(schema.get("sort")),
    )


def id_filter(ids: Sequence[str]) -> str:
    """``filter_by`` expression matching *ids*, backtick-quoted so commas and brackets are safe."""
    quoted = ",".join(f"`{doc_id.replace('`', '')}`" for doc_id in ids)
    return f"id:[{quoted}]"


class TypesenseAdapter(BackendAdapter):
    """Backend adapter for Typesense.

    Args:
        base_url: Typesense node URL, e.g. ``"http://localhost:8108"``.
        api_key: Admin API key.
        index_prefix: Prefix prepended to every collection name.
        metadata_index: Unused by the alias strategy; accepted for uniformity.
        timeout: HTTP request timeout in seconds.
        **kwargs: Extra keyword arguments stored for future use.
    """

    checkpoint_strategy = CheckpointStrategy.ALIAS
    supports_synonyms = True
    supports_schema_update = False

    def __init__(
        self,
        base_url: str = "http://localhost:8108",
        api_key: str | None = None,
        index_prefix: str = "",
        metadata_index: str = "MetaCollections",
        timeout: float = 30.0,
        **kwargs: Any,
    ) -> None:
        super().__init__(index_prefix=index_prefix, metadata_index=metadata_index)
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._extra_kwargs = kwargs
        self._client: httpx.AsyncClient | None = None

    @property
    def name(self) -> str:
        return "typesense"

    async def initialize(self) -> None:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["X-TYPESENSE-API-KEY"] = self._api_key

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(self._timeout),
            headers=headers,
        )

        try:
            resp = await self._client.get("/health")
            resp.raise_for_status()
            if not resp.json().get("ok"):
                raise ConnectionError(f"Typesense not ready: {resp.text}")
            logger.info("Connected to Typesense at %s", self._base_url)
        except httpx.HTTPError as e:
            raise ConnectionError(f"Failed to connect to Typesense: {e}") from e

    async def shutdown(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def health_check(self) -> AdapterHealth:
        if not self._client:
            return AdapterHealth(status="unhealthy", message="Client not initialized")

        try:
            start = time.monotonic()
            resp = await self._client.get("/health")
            latency_ms = int((time.monotonic() - start) * 1000)
            ok = resp.status_code == 200 and bool(resp.json().get("ok"))
            return AdapterHealth(
                status="healthy" if ok else "degraded",
                latency_ms=latency_ms,
                last_check=datetime.now(UTC).isoformat(),
                message=None if ok else f"Typesense returned HTTP {resp.status_code}",
            )
        except Exception as e:
            return AdapterHealth(status="unhealthy", message=str(e))

    async def _request(
        self,
        method: str,
        path: str,
        *,
        allow_not_found: bool = False,
        **kwargs: Any,
    ) -> httpx.Response | None:
        if not self._client:
            raise ConnectionError("Typesense client not initialized.")
        try:
            resp = await self._client.request(method, path, **kwargs)
            if allow_not_found and resp.status_code == 404:
                return None
            resp.raise_for_status()
            return resp
        except httpx.HTTPError as e:
            raise TransportError(f"Typesense {method} {path} failed: {e}") from e

    # ── Schema ───────────────────────────────────────────────────────────

    async def _collection(self, index: str) -> dict[str, Any] | None:
        resp = await self._request("GET", f"/collections/{index}", allow_not_found=True)
        return resp.json() if resp is not None else None

    async def get_index_fields(self, index: str) -> list[FieldDescriptor] | None:
        collection = await self._collection(index)
        if collection is None:
            return None
        fields = []
        for raw in collection.get("fields", []):
            field_type, is_array = parse_field_type(raw.get("type", "auto"))
            indexed = bool(raw.get("index", True))
            fields.append(
                FieldDescriptor(
                    name=raw["name"],
                    type=field_type,
                    is_array=is_array,
                    is_facet=bool(raw.get("facet")),
                    is_filterable=indexed,
                    is_searchable=indexed,
                    is_sortable=bool(raw.get("sort")),
                    locale=raw.get("locale") or None,
                )
            )
        return fields

    def schema_changes(self, remote: Sequence[FieldDescriptor], desired: Sequence[FieldDescriptor]) -> list[str]:
        """Compare the field definitions Typesense stores.

        Searchable and filterable collapse into one ``index`` flag.
        """
        remote_by_name = {f.name: _comparable(field_schema(f)) for f in remote}
        desired_by_name = {f.name: _comparable(field_schema(f)) for f in desired}
        return [
            name
            for name in sorted(set(remote_by_name) | set(desired_by_name))
            if remote_by_name.get(name) != desired_by_name.get(name)
        ]

    async def create_index(self, index: str, fields: Sequence[FieldDescriptor]) -> TaskHandle | None:
        body: dict[str, Any] = {"name": index, "fields": [field_schema(f) for f in fields]}
        sortable = [f for f in fields if f.is_sortable]
        if sortable:
            body["default_sorting_field"] = sortable[0].name
        if any(f.type is FieldType.OBJECT for f in fields):
            body["enable_nested_fields"] = True
        await self._request("POST", "/collections", json=body)
        logger.info("Created Typesense collection %s (%d fields)", index, len(fields))
        return None

    async def drop_index(self, index: str) -> TaskHandle | None:
        await self._request("DELETE", f"/collections/{index}", allow_not_found=True)
        return None

    # ── Documents ────────────────────────────────────────────────────────

    async def upsert_documents(self, index: str, records: Sequence[Record]) -> BatchOutcome:
        """Import records as JSONL with ``action=upsert``.

        The response holds one result line per input line, in order.
        """
        body = "\n".join(json.dumps(r.to_document(), default=str, ensure_ascii=False) for r in records)
        resp = await self._request(
            "POST",
            f"/collections/{index}/documents/import",
            params={"action": "upsert"},
            content=body.encode("utf-8"),
            headers={"Content-Type": "text/plain"},
        )
        assert resp is not None
        lines = [line for line in resp.text.splitlines() if line.strip()]
        outcomes = []
        for record, line in zip(records, lines, strict=False):
            result = json.loads(line)
            outcomes.append(
                ImportOutcome(id=record.id, success=bool(result.get("success")), error=result.get("error"))
            )
        return BatchOutcome(outcomes=outcomes)

    async def delete_documents(self, index: str, ids: Sequence[str]) -> TaskHandle | None:
        if ids:
            await self._request(
                "DELETE",
                f"/collections/{index}/documents",
                params={"filter_by": id_filter(ids)},
                allow_not_found=True,
            )
        return None

    async def count_documents(self, index: str) -> int:
        collection = await self._collection(index)
        return int(collection.get("num_documents", 0)) if collection else 0

    # ── Synonyms ─────────────────────────────────────────────────────────

    async def list_synonyms(self, index: str) -> list[Synonym | OneWaySynonym]:
        resp = await self._request("GET", f"/collections/{index}/synonyms")
        assert resp is not None
        rules: list[Synonym | OneWaySynonym] = []
        for raw in resp.json().get("synonyms", []):
            terms = tuple(raw.get("synonyms") or ())
            if not terms:
                continue
            if raw.get("root"):
                rules.append(OneWaySynonym(id=raw.get("id"), root=raw["root"], synonyms=terms))
            else:
                rules.append(Synonym(id=raw.get("id"), synonyms=terms))
        return rules

    async def add_synonym(self, index: str, rule: Synonym | OneWaySynonym) -> TaskHandle | None:
        body: dict[str, Any] = {"synonyms": list(rule.synonyms)}
        if rule.root:
            body["root"] = rule.root
        await self._request("PUT", f"/collections/{index}/synonyms/{rule.rule_id}", json=body)
        return None

    async def remove_synonym(self, index: str, rule: Synonym | OneWaySynonym) -> TaskHandle | None:
        await self._request("DELETE", f"/collections/{index}/synonyms/{rule.rule_id}", allow_not_found=True)
        return None

    # ── Alias checkpoint primitives ──────────────────────────────────────

    async def list_aliases(self) -> list[Alias]:
        resp = await self._request("GET", "/aliases")
        assert resp is not None
        return [
            Alias(name=raw["name"], target=raw["collection_name"])
            for raw in resp.json().get("aliases", [])
        ]

    async def upsert_alias(self, name: str, target: str) -> None:
        await self._request("PUT", f"/aliases/{name}", json={"collection_name": target})

    async def delete_alias(self, name: str) -> None:
        await self._request("DELETE", f"/aliases/{name}", allow_not_found=True)
