"""Tests for the SearchSync Python SDK client."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator

import httpx
import pytest

from searchsync.adapters.base.registry import AdapterRegistry
from searchsync.adapters.memory.adapter import MemoryAdapter
from searchsync.api.app import create_app
from searchsync.api.deps import set_scheduler
from searchsync.client.client import AsyncSearchSyncClient, JobFailedError, SearchSyncClient
from searchsync.config.settings import Settings
from searchsync.core.scheduler import JobScheduler
from searchsync.providers.registry import DataProviderRegistry
from tests.helpers import RecordingProvider

# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
async def scheduler(
    settings: Settings, provider: RecordingProvider, memory_adapter: MemoryAdapter
) -> AsyncIterator[JobScheduler]:
    providers = DataProviderRegistry()
    providers.register(provider)
    adapters = AdapterRegistry()
    await adapters.add(memory_adapter, initialize=False)
    s = JobScheduler(settings.sync, providers, adapters)
    await s.start()
    set_scheduler(s)
    yield s
    set_scheduler(None)
    await s.stop()


@pytest.fixture
async def sdk(settings: Settings, scheduler: JobScheduler) -> AsyncIterator[AsyncSearchSyncClient]:
    """SDK client talking to the app in-process."""
    transport = httpx.ASGITransport(app=create_app(settings))
    async with AsyncSearchSyncClient(base_url="http://testserver", transport=transport) as client:
        yield client


# ── Async client ─────────────────────────────────────────────────────────────


class TestAsyncClient:
    """Test the async SDK client against an in-process server."""

    async def test_health(self, sdk: AsyncSearchSyncClient) -> None:
        health = await sdk.health()

        assert health["status"] == "healthy"
        assert health["active_backends"] == ["memory"]

    async def test_backend_health(self, sdk: AsyncSearchSyncClient) -> None:
        data = await sdk.backend_health()

        assert data["backends"]["memory"]["status"] == "healthy"

    async def test_providers(self, sdk: AsyncSearchSyncClient) -> None:
        assert await sdk.providers() == ["products"]

    async def test_sync_all_and_wait(self, sdk: AsyncSearchSyncClient, memory_adapter: MemoryAdapter) -> None:
        job = await sdk.sync_all()

        done = await sdk.wait_for_job(job["id"], timeout=5, poll_interval=1)

        assert done["status"] == "succeeded"
        assert done["affected"] == 2
        assert set(memory_adapter.indexes["products"].documents) == {"1", "2"}

    async def test_upsert_then_delete(self, sdk: AsyncSearchSyncClient, memory_adapter: MemoryAdapter) -> None:
        upsert = await sdk.upsert("products", [{"id": "9", "title": "Lantern"}])
        await sdk.wait_for_job(upsert["id"], timeout=5, poll_interval=1)
        delete = await sdk.delete("products", ["9"])
        done = await sdk.get_job(delete["id"], wait=5)

        assert done["kind"] == "delete"
        assert done["status"] == "succeeded"
        assert "9" not in memory_adapter.indexes["products"].documents
        assert [job["id"] for job in await sdk.jobs()] == [upsert["id"], delete["id"]]

    async def test_unknown_provider_raises_http_error(self, sdk: AsyncSearchSyncClient) -> None:
        with pytest.raises(httpx.HTTPStatusError) as exc_info:
            await sdk.sync("nope")

        assert exc_info.value.response.status_code == 404

    async def test_raise_on_failure(self, sdk: AsyncSearchSyncClient, memory_adapter: MemoryAdapter) -> None:
        memory_adapter.fail_task_kinds = {"upsert"}
        job = await sdk.sync("products")

        with pytest.raises(JobFailedError, match="failed") as exc_info:
            await sdk.wait_for_job(job["id"], timeout=5, poll_interval=1, raise_on_failure=True)

        assert exc_info.value.job["status"] == "failed"


# ── Sync client ──────────────────────────────────────────────────────────────


def _canned_server(calls: list[httpx.Request]) -> httpx.MockTransport:
    job = {"id": "job_1", "kind": "sync", "status": "running", "providers": None}

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.url.path == "/v1/sync":
            return httpx.Response(202, json={**job, "status": "queued"})
        if request.url.path == "/v1/jobs/job_1":
            status = "succeeded" if len(calls) >= 3 else "running"
            return httpx.Response(200, json={**job, "status": status})
        return httpx.Response(404, json={"detail": "not found"})

    return httpx.MockTransport(handler)


class TestSyncClient:
    def test_trigger_and_wait(self) -> None:
        calls: list[httpx.Request] = []
        client = SearchSyncClient("http://testserver", transport=_canned_server(calls))

        job = client.sync_all()
        done = client.wait_for_job(job["id"], poll_interval=0.5)

        assert job["status"] == "queued"
        assert done["status"] == "succeeded"
        assert [r.url.path for r in calls] == ["/v1/sync", "/v1/jobs/job_1", "/v1/jobs/job_1"]
        assert calls[1].url.params["wait"] == "0.5"

    def test_upsert_sends_documents(self) -> None:
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(202, json={"id": "job_2", "kind": "upsert", "status": "queued"})

        client = SearchSyncClient("http://testserver", transport=httpx.MockTransport(handler))

        client.upsert("products", [{"id": "1"}])

        assert calls[0].url.path == "/v1/providers/products/documents"
        assert json.loads(calls[0].content) == {"documents": [{"id": "1"}]}
