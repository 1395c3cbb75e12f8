"""Job Scheduler — Serializes sync requests through a single consumer.

Every trigger (full sync, one provider, explicit upsert or delete) becomes a
job on an unbounded FIFO queue. One worker task consumes the queue, so two
runs never write to the same index or checkpoint at the same time and no
locks are needed.

For each job the worker resolves its data providers and runs the sync engine
for every (backend, provider) pair, backends in registration order and
providers in resolution order. The first failure aborts the remaining pairs
of that job and is attached to its handle; the worker then moves on to the
next job.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import OrderedDict
from collections.abc import AsyncIterable, Iterable
from datetime import UTC, datetime

from searchsync.adapters.base.registry import AdapterRegistry
from searchsync.config.settings import SyncSettings
from searchsync.core.engine import SyncEngine
from searchsync.core.exceptions import JobCancelledError, SyncCancelled
from searchsync.core.streams import aiterate
from searchsync.models.job import JobInfo, JobKind, JobStatus, SyncReport
from searchsync.models.record import Record
from searchsync.providers.base import DataProvider
from searchsync.providers.explicit import ExplicitChangesProvider
from searchsync.providers.registry import DataProviderRegistry

logger = logging.getLogger(__name__)


class SyncJob:
    """A queued request plus the future resolved exactly once when it ends."""

    def __init__(
        self,
        kind: JobKind,
        providers: list[str] | None = None,
        *,
        records: Iterable[Record] | AsyncIterable[Record] | None = None,
        ids: Iterable[str] | AsyncIterable[str] | None = None,
    ) -> None:
        self.id = f"job_{uuid.uuid4().hex[:12]}"
        self.kind = kind
        self.providers = providers
        self.records = records
        self.ids = ids
        self.status = JobStatus.QUEUED
        self.created_at = datetime.now(UTC)
        self.started_at: datetime | None = None
        self.finished_at: datetime | None = None
        self.reports: list[SyncReport] = []
        self.error: str | None = None
        self.future: asyncio.Future[int] = asyncio.get_running_loop().create_future()

    @property
    def affected(self) -> int:
        return sum(report.total for report in self.reports)

    def mark_running(self) -> None:
        self.status = JobStatus.RUNNING
        self.started_at = datetime.now(UTC)

    def succeed(self) -> None:
        if self.future.done():
            return
        self._finish(JobStatus.SUCCEEDED)
        self.future.set_result(self.affected)

    def fail(self, exc: BaseException) -> None:
        if self.future.done():
            return
        self._finish(JobStatus.FAILED)
        self.error = f"{type(exc).__name__}: {exc}"
        self.future.set_exception(exc)
        # Mark retrieved: a handle nobody waits on must not log at garbage collection.
        self.future.exception()

    def cancel(self) -> None:
        if self.future.done():
            return
        self._finish(JobStatus.CANCELLED)
        self.future.cancel()

    def _finish(self, status: JobStatus) -> None:
        self.status = status
        self.finished_at = datetime.now(UTC)

    def info(self) -> JobInfo:
        return JobInfo(
            id=self.id,
            kind=self.kind,
            providers=self.providers,
            status=self.status,
            created_at=self.created_at,
            started_at=self.started_at,
            finished_at=self.finished_at,
            affected=self.affected,
            reports=list(self.reports),
            error=self.error,
        )


class JobHandle:
    """Caller-side view of a queued job."""

    def __init__(self, job: SyncJob) -> None:
        self._job = job

    @property
    def id(self) -> str:
        return self._job.id

    @property
    def status(self) -> JobStatus:
        return self._job.status

    def done(self) -> bool:
        return self._job.future.done()

    def info(self) -> JobInfo:
        return self._job.info()

    async def wait(self, timeout: float | None = None) -> int:
        """Wait for the job to finish and return the number of affected records.

        Timing out or cancelling the waiter never cancels the job itself.

        Raises:
            TimeoutError: If *timeout* elapsed first.
            JobCancelledError: If the job was cancelled.
            Exception: The failure that aborted the job.
        """
        try:
            return await asyncio.wait_for(asyncio.shield(self._job.future), timeout)
        except asyncio.CancelledError:
            if self._job.future.cancelled():
                raise JobCancelledError(f"Job {self.id} was cancelled") from None
            raise


class JobScheduler:
    """Single-consumer scheduler and trigger API.

    Args:
        settings: Sync configuration.
        providers: Registry of data providers.
        adapters: Registry of active backend adapters.
        engine: Sync engine; built from *settings* when omitted.

    Example:
        >>> scheduler = JobScheduler(settings.sync, providers, adapters)
        >>> await scheduler.start()
        >>> handle = scheduler.sync("products")
        >>> affected = await handle.wait(timeout=60)
    """

    def __init__(
        self,
        settings: SyncSettings,
        providers: DataProviderRegistry,
        adapters: AdapterRegistry,
        engine: SyncEngine | None = None,
    ) -> None:
        self.settings = settings
        self.providers = providers
        self.adapters = adapters
        self.engine = engine or SyncEngine(settings)
        self.startup_job: JobHandle | None = None
        self._periodic_job: JobHandle | None = None
        self._queue: asyncio.Queue[SyncJob | None] = asyncio.Queue()
        self._jobs: OrderedDict[str, SyncJob] = OrderedDict()
        self._stopping = asyncio.Event()
        self._worker: asyncio.Task[None] | None = None
        self._timer: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    # ──────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Start the worker, queueing the startup sync first if configured."""
        if self.running:
            return
        self._stopping.clear()
        if self.settings.sync_on_startup:
            logger.info("Queueing full sync on startup")
            self.startup_job = self.sync_all()
        self._worker = asyncio.create_task(self._consume(), name="searchsync-worker")
        if self.settings.interval_seconds:
            self._timer = asyncio.create_task(self._tick(self.settings.interval_seconds), name="searchsync-timer")
        logger.info("Job scheduler started")

    async def stop(self) -> None:
        """Stop the worker.

        The in-flight job stops at its next cancellation check point without
        committing a checkpoint; queued jobs are resolved as cancelled.
        """
        self._stopping.set()
        if self._timer is not None:
            self._timer.cancel()
            await asyncio.gather(self._timer, return_exceptions=True)
            self._timer = None

        cancelled = self._drain()
        if cancelled:
            logger.info("Cancelled %d queued job(s)", cancelled)

        if self._worker is not None:
            self._queue.put_nowait(None)
            try:
                await asyncio.wait_for(asyncio.shield(self._worker), self.settings.shutdown_timeout)
            except TimeoutError:
                logger.warning("Worker did not stop within %.1fs, cancelling", self.settings.shutdown_timeout)
                self._worker.cancel()
                await asyncio.gather(self._worker, return_exceptions=True)
            self._worker = None
            # A force-cancelled worker leaves its stop sentinel queued.
            self._drain()
        logger.info("Job scheduler stopped")

    def _drain(self) -> int:
        count = 0
        while True:
            try:
                job = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return count
            self._queue.task_done()
            if job is not None:
                job.cancel()
                count += 1

    async def _tick(self, interval: float) -> None:
        while not self._stopping.is_set():
            await asyncio.sleep(interval)
            if self._stopping.is_set():
                return
            if self._periodic_job is not None and not self._periodic_job.done():
                logger.info("Previous periodic sync %s still pending, skipping", self._periodic_job.id)
                continue
            logger.info("Queueing periodic full sync")
            self._periodic_job = self.sync_all()

    # ──────────────────────────────────────────────────────────────────────
    # Trigger API
    # ──────────────────────────────────────────────────────────────────────

    def sync_all(self) -> JobHandle:
        """Queue an incremental sync of every registered provider."""
        return self._enqueue(SyncJob(JobKind.SYNC))

    def sync(self, name: str) -> JobHandle:
        """Queue an incremental sync of one provider.

        Raises:
            ProviderNotFoundError: If *name* is not registered.
        """
        self.providers.check([name])
        return self._enqueue(SyncJob(JobKind.SYNC, [name]))

    def upsert(self, name: str, records: Iterable[Record] | AsyncIterable[Record]) -> JobHandle:
        """Queue an upsert of explicit records into one provider's indexes.

        Raises:
            ProviderNotFoundError: If *name* is not registered.
        """
        self.providers.check([name])
        return self._enqueue(SyncJob(JobKind.UPSERT, [name], records=records))

    def delete(self, name: str, ids: Iterable[str] | AsyncIterable[str]) -> JobHandle:
        """Queue a deletion of explicit identifiers from one provider's indexes.

        Raises:
            ProviderNotFoundError: If *name* is not registered.
        """
        self.providers.check([name])
        return self._enqueue(SyncJob(JobKind.DELETE, [name], ids=ids))

    def get(self, job_id: str) -> JobHandle | None:
        """Handle of a queued, running, or recently finished job."""
        job = self._jobs.get(job_id)
        return JobHandle(job) if job is not None else None

    def jobs(self) -> list[JobInfo]:
        """Snapshots of known jobs, oldest first."""
        return [job.info() for job in self._jobs.values()]

    def _enqueue(self, job: SyncJob) -> JobHandle:
        self._remember(job)
        if self._stopping.is_set():
            logger.warning("Scheduler is stopping, cancelling job %s", job.id)
            job.cancel()
        else:
            self._queue.put_nowait(job)
            logger.info("Queued %s job %s (providers: %s)", job.kind.value, job.id, job.providers or "all")
        return JobHandle(job)

    def _remember(self, job: SyncJob) -> None:
        self._jobs[job.id] = job
        finished = [jid for jid, j in self._jobs.items() if j.status.is_terminal]
        for jid in finished[: max(0, len(finished) - self.settings.job_history)]:
            del self._jobs[jid]

    # ──────────────────────────────────────────────────────────────────────
    # Worker
    # ──────────────────────────────────────────────────────────────────────

    async def _consume(self) -> None:
        logger.info("Sync worker is running")
        while True:
            job = await self._queue.get()
            try:
                if job is None:
                    return
                if self._stopping.is_set():
                    job.cancel()
                    continue
                await self._execute(job)
            finally:
                self._queue.task_done()

    async def _execute(self, job: SyncJob) -> None:
        logger.info("Running %s job %s", job.kind.value, job.id)
        job.mark_running()
        try:
            await self._process(job)
        except SyncCancelled:
            logger.info("Job %s cancelled", job.id)
            job.cancel()
        except asyncio.CancelledError:
            job.cancel()
            raise
        except Exception as e:
            logger.error("Job %s failed: %s", job.id, e, exc_info=True)
            job.fail(e)
        else:
            job.succeed()
            logger.info("Job %s succeeded (%d affected)", job.id, job.affected)

    async def _process(self, job: SyncJob) -> None:
        providers = self.providers.resolve(job.providers)
        if job.kind is not JobKind.SYNC:
            providers = await self._explicit(job, providers)
            run = self.engine.apply
        else:
            run = self.engine.run

        for adapter in self.adapters.active():
            for provider in providers:
                if self._stopping.is_set():
                    raise SyncCancelled(f"Job {job.id} cancelled")
                logger.info("Running %s for %s", adapter.name, provider.name)
                try:
                    report = await run(provider, adapter, self._stopping)
                except (SyncCancelled, asyncio.CancelledError):
                    raise
                except Exception:
                    logger.error("Error running %s for %s", adapter.name, provider.name)
                    raise
                job.reports.append(report)

    @staticmethod
    async def _explicit(job: SyncJob, providers: list[DataProvider]) -> list[DataProvider]:
        # Materialized once so every backend receives the same set.
        records = [r async for r in aiterate(job.records)] if job.records is not None else None
        ids = [i async for i in aiterate(job.ids)] if job.ids is not None else None
        return [ExplicitChangesProvider(p, records=records, ids=ids) for p in providers]
