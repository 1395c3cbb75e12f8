"""Tests for the single-consumer job scheduler."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from datetime import datetime

import pytest

from searchsync.adapters.base.registry import AdapterRegistry
from searchsync.adapters.memory.adapter import MemoryAdapter
from searchsync.config.settings import SyncSettings
from searchsync.core.exceptions import BackendTaskFailure, JobCancelledError, ProviderNotFoundError
from searchsync.core.scheduler import JobScheduler
from searchsync.models.job import JobKind, JobStatus
from searchsync.models.record import Record
from searchsync.providers.registry import DataProviderRegistry
from tests.helpers import RecordingProvider


class GatedProvider(RecordingProvider):
    """Provider whose record stream blocks until ``gate`` is set."""

    def __init__(self) -> None:
        super().__init__(name="slow")
        self.started = asyncio.Event()
        self.gate = asyncio.Event()
        self.put("s1", title="slow")

    async def get(self, checkpoint: datetime | None = None) -> AsyncIterator[Record]:
        self.started.set()
        await self.gate.wait()
        async for record in super().get(checkpoint):
            yield record


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def providers(provider: RecordingProvider) -> DataProviderRegistry:
    registry = DataProviderRegistry()
    registry.register(provider)
    return registry


@pytest.fixture
async def adapters(memory_adapter: MemoryAdapter) -> AdapterRegistry:
    registry = AdapterRegistry()
    await registry.add(memory_adapter, initialize=False)
    return registry


@pytest.fixture
async def scheduler(
    sync_settings: SyncSettings, providers: DataProviderRegistry, adapters: AdapterRegistry
) -> AsyncIterator[JobScheduler]:
    s = JobScheduler(sync_settings, providers, adapters)
    await s.start()
    yield s
    await s.stop()


# ── Triggers ─────────────────────────────────────────────────────────────────


class TestTriggers:
    async def test_sync_returns_affected_count(self, scheduler: JobScheduler) -> None:
        handle = scheduler.sync("products")

        assert await handle.wait(timeout=5) == 2
        info = handle.info()
        assert info.status is JobStatus.SUCCEEDED
        assert info.kind is JobKind.SYNC
        assert info.providers == ["products"]
        assert info.affected == 2
        assert len(info.reports) == 1
        assert info.started_at is not None and info.finished_at is not None

    async def test_unknown_provider_rejected_at_trigger(self, scheduler: JobScheduler) -> None:
        with pytest.raises(ProviderNotFoundError, match="nope"):
            scheduler.sync("nope")
        with pytest.raises(ProviderNotFoundError):
            scheduler.upsert("nope", [])
        with pytest.raises(ProviderNotFoundError):
            scheduler.delete("nope", [])
        assert scheduler.jobs() == []

    async def test_explicit_upsert_and_delete(
        self, scheduler: JobScheduler, memory_adapter: MemoryAdapter
    ) -> None:
        await scheduler.sync("products").wait(timeout=5)
        aliases = dict(memory_adapter.aliases)

        upsert = scheduler.upsert("products", [Record(id="7", attributes={"title": "Spotlight"})])
        delete = scheduler.delete("products", iter(["1"]))

        assert await upsert.wait(timeout=5) == 1
        assert await delete.wait(timeout=5) == 1
        assert set(memory_adapter.indexes["products"].documents) == {"2", "7"}
        assert memory_adapter.aliases == aliases

    async def test_explicit_upsert_accepts_async_iterable(
        self, scheduler: JobScheduler, memory_adapter: MemoryAdapter
    ) -> None:
        async def records() -> AsyncIterator[Record]:
            for i in range(3):
                yield Record(id=f"a{i}")

        assert await scheduler.upsert("products", records()).wait(timeout=5) == 3
        assert {"a0", "a1", "a2"} <= set(memory_adapter.indexes["products"].documents)

    async def test_sync_all_runs_every_backend_and_provider_in_order(
        self,
        sync_settings: SyncSettings,
        provider: RecordingProvider,
        make_provider: Callable[..., RecordingProvider],
    ) -> None:
        providers = DataProviderRegistry()
        providers.register(provider)
        providers.register(make_provider(name="articles"))
        adapters = AdapterRegistry()
        await adapters.add(MemoryAdapter(name="first"))
        await adapters.add(MemoryAdapter(name="second", checkpoint_strategy="metadata"))
        scheduler = JobScheduler(sync_settings, providers, adapters)
        await scheduler.start()
        try:
            handle = scheduler.sync_all()
            await handle.wait(timeout=5)
        finally:
            await scheduler.stop()

        pairs = [(r.backend, r.provider) for r in handle.info().reports]
        assert pairs == [
            ("first", "products"),
            ("first", "articles"),
            ("second", "products"),
            ("second", "articles"),
        ]
        assert handle.info().providers is None

    async def test_jobs_processed_in_fifo_order(self, scheduler: JobScheduler) -> None:
        handles = [scheduler.sync("products"), scheduler.upsert("products", [Record(id="x")]), scheduler.sync_all()]

        for handle in handles:
            await handle.wait(timeout=5)

        finished = [h.info().finished_at for h in handles]
        assert finished == sorted(finished)
        assert [info.id for info in scheduler.jobs()] == [h.id for h in handles]


# ── Failures ─────────────────────────────────────────────────────────────────


class TestFailures:
    async def test_failure_surfaces_to_waiter_and_worker_continues(
        self, scheduler: JobScheduler, memory_adapter: MemoryAdapter
    ) -> None:
        memory_adapter.fail_task_kinds = {"upsert"}
        failed = scheduler.sync("products")

        with pytest.raises(BackendTaskFailure):
            await failed.wait(timeout=5)
        assert failed.status is JobStatus.FAILED
        assert "BackendTaskFailure" in (failed.info().error or "")

        memory_adapter.fail_task_kinds = set()
        assert await scheduler.sync("products").wait(timeout=5) == 2
        assert scheduler.running

    async def test_failure_aborts_remaining_pairs(
        self, sync_settings: SyncSettings, provider: RecordingProvider, make_provider: Callable[..., RecordingProvider]
    ) -> None:
        providers = DataProviderRegistry()
        providers.register(provider)
        providers.register(make_provider(name="articles"))
        adapters = AdapterRegistry()
        broken = await adapters.add(MemoryAdapter(name="broken", fail_task_kinds={"create_index"}))
        scheduler = JobScheduler(sync_settings, providers, adapters)
        await scheduler.start()
        try:
            handle = scheduler.sync_all()
            with pytest.raises(BackendTaskFailure):
                await handle.wait(timeout=5)
        finally:
            await scheduler.stop()

        assert handle.info().reports == []
        assert [index for _, index, _ in broken.operations if index == "articles"] == []

    async def test_unwaited_failure_does_not_break_scheduler(
        self, scheduler: JobScheduler, memory_adapter: MemoryAdapter
    ) -> None:
        memory_adapter.fail_task_kinds = {"upsert"}
        scheduler.sync("products")
        second = scheduler.sync_all()
        with pytest.raises(BackendTaskFailure):
            await second.wait(timeout=5)
        assert all(info.status is JobStatus.FAILED for info in scheduler.jobs())


# ── Waiting & cancellation ───────────────────────────────────────────────────


class TestWaitingAndCancellation:
    async def test_wait_timeout_does_not_cancel_job(
        self, sync_settings: SyncSettings, adapters: AdapterRegistry
    ) -> None:
        slow = GatedProvider()
        providers = DataProviderRegistry()
        providers.register(slow)
        scheduler = JobScheduler(sync_settings, providers, adapters)
        await scheduler.start()
        try:
            handle = scheduler.sync("slow")
            with pytest.raises(TimeoutError):
                await handle.wait(timeout=0.05)
            assert not handle.done()

            slow.gate.set()
            assert await handle.wait(timeout=5) == 1
        finally:
            await scheduler.stop()

    async def test_stop_cancels_queued_jobs(
        self, sync_settings: SyncSettings, providers: DataProviderRegistry, adapters: AdapterRegistry
    ) -> None:
        scheduler = JobScheduler(sync_settings, providers, adapters)
        handle = scheduler.sync("products")

        await scheduler.stop()

        assert handle.status is JobStatus.CANCELLED
        with pytest.raises(JobCancelledError):
            await handle.wait(timeout=1)

    async def test_triggers_after_stop_are_cancelled(self, scheduler: JobScheduler) -> None:
        await scheduler.stop()

        handle = scheduler.sync("products")

        assert handle.done()
        assert handle.status is JobStatus.CANCELLED

    async def test_stop_interrupts_running_job_without_commit(
        self, sync_settings: SyncSettings, adapters: AdapterRegistry, memory_adapter: MemoryAdapter
    ) -> None:
        slow = GatedProvider()
        providers = DataProviderRegistry()
        providers.register(slow)
        scheduler = JobScheduler(sync_settings, providers, adapters)
        await scheduler.start()
        handle = scheduler.sync("slow")
        queued = scheduler.sync("slow")
        await slow.started.wait()

        stopping = asyncio.create_task(scheduler.stop())
        await asyncio.sleep(0)
        slow.gate.set()
        await stopping

        assert handle.status is JobStatus.CANCELLED
        assert queued.status is JobStatus.CANCELLED
        assert memory_adapter.aliases == {}
        with pytest.raises(JobCancelledError):
            await handle.wait(timeout=1)

    async def test_stop_hard_cancels_after_timeout(
        self, sync_settings: SyncSettings, adapters: AdapterRegistry
    ) -> None:
        slow = GatedProvider()
        providers = DataProviderRegistry()
        providers.register(slow)
        scheduler = JobScheduler(sync_settings.model_copy(update={"shutdown_timeout": 0.05}), providers, adapters)
        await scheduler.start()
        handle = scheduler.sync("slow")
        await slow.started.wait()

        await scheduler.stop()

        assert handle.status is JobStatus.CANCELLED
        assert not scheduler.running

    async def test_restart_after_hard_cancel_runs_jobs(
        self, sync_settings: SyncSettings, provider: RecordingProvider, adapters: AdapterRegistry
    ) -> None:
        slow = GatedProvider()
        providers = DataProviderRegistry()
        providers.register(slow)
        providers.register(provider)
        scheduler = JobScheduler(sync_settings.model_copy(update={"shutdown_timeout": 0.05}), providers, adapters)
        await scheduler.start()
        scheduler.sync("slow")
        await slow.started.wait()
        await scheduler.stop()

        await scheduler.start()
        try:
            assert await scheduler.sync("products").wait(timeout=2) == 2
        finally:
            await scheduler.stop()


# ── Lifecycle ────────────────────────────────────────────────────────────────


class TestLifecycle:
    async def test_startup_sync_queued_first(
        self, sync_settings: SyncSettings, providers: DataProviderRegistry, adapters: AdapterRegistry
    ) -> None:
        scheduler = JobScheduler(sync_settings.model_copy(update={"sync_on_startup": True}), providers, adapters)
        await scheduler.start()
        try:
            later_job = scheduler.sync("products")
            assert scheduler.startup_job is not None
            assert await scheduler.startup_job.wait(timeout=5) == 2
            assert await later_job.wait(timeout=5) == 0
        finally:
            await scheduler.stop()

    async def test_periodic_sync(
        self, sync_settings: SyncSettings, providers: DataProviderRegistry, adapters: AdapterRegistry
    ) -> None:
        scheduler = JobScheduler(sync_settings.model_copy(update={"interval_seconds": 0.02}), providers, adapters)
        await scheduler.start()
        try:
            await asyncio.sleep(0.15)
        finally:
            await scheduler.stop()

        assert len(scheduler.jobs()) >= 2

    async def test_periodic_sync_skipped_while_previous_pending(
        self, sync_settings: SyncSettings, adapters: AdapterRegistry
    ) -> None:
        slow = GatedProvider()
        providers = DataProviderRegistry()
        providers.register(slow)
        settings = sync_settings.model_copy(update={"interval_seconds": 0.02, "shutdown_timeout": 0.05})
        scheduler = JobScheduler(settings, providers, adapters)
        await scheduler.start()
        try:
            await slow.started.wait()
            await asyncio.sleep(0.15)
            assert len(scheduler.jobs()) == 1
        finally:
            await scheduler.stop()

    async def test_finished_jobs_trimmed_to_history(
        self, sync_settings: SyncSettings, providers: DataProviderRegistry, adapters: AdapterRegistry
    ) -> None:
        scheduler = JobScheduler(sync_settings.model_copy(update={"job_history": 1}), providers, adapters)
        await scheduler.start()
        try:
            first = scheduler.sync("products")
            await first.wait(timeout=5)
            second = scheduler.sync("products")
            await second.wait(timeout=5)
            third = scheduler.sync("products")
            await third.wait(timeout=5)
        finally:
            await scheduler.stop()

        assert scheduler.get(first.id) is None
        assert scheduler.get(third.id) is not None

    async def test_start_is_idempotent(self, scheduler: JobScheduler) -> None:
        await scheduler.start()

        assert scheduler.running
        assert await scheduler.sync("products").wait(timeout=5) == 2
