"""SearchSync Python SDK — Async and sync clients for the SearchSync REST API.

Usage::

    # Async
    async with AsyncSearchSyncClient("http://localhost:8080") as client:
        job = await client.upsert("products", [{"id": "42", "title": "Lamp"}])
        job = await client.wait_for_job(job["id"])

    # Sync (wraps async client internally)
    client = SearchSyncClient("http://localhost:8080")
    job = client.sync_all()
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Coroutine
from typing import Any, TypeVar, cast

import httpx

_T = TypeVar("_T")

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════════════
# Response types (plain dicts mirroring the server models)
# ═══════════════════════════════════════════════════════════════════════════════

JobResult = dict[str, Any]
"""Job snapshot dict (mirrors ``JobInfo`` JSON)."""

_TERMINAL_STATUSES = frozenset({"succeeded", "failed", "cancelled"})


class JobFailedError(Exception):
    """Raised by ``wait_for_job(raise_on_failure=True)`` for a failed or cancelled job."""

    def __init__(self, job: JobResult) -> None:
        self.job = job
        super().__init__(f"Job {job.get('id')} {job.get('status')}: {job.get('error') or 'no error message'}")


# ═══════════════════════════════════════════════════════════════════════════════
# Async client
# ═══════════════════════════════════════════════════════════════════════════════


class AsyncSearchSyncClient:
    """Async Python client for the SearchSync API.

    Args:
        base_url: SearchSync server URL, e.g. ``"http://localhost:8080"``.
        timeout: Request timeout in seconds.
        **httpx_kwargs: Additional keyword arguments passed to ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8080",
        *,
        timeout: float = 60.0,
        **httpx_kwargs: Any,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            **httpx_kwargs,
        )

    async def __aenter__(self) -> AsyncSearchSyncClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def _get(self, path: str, **kwargs: Any) -> Any:
        resp = await self._client.get(path, **kwargs)
        resp.raise_for_status()
        return resp.json()

    async def _post(self, path: str, **kwargs: Any) -> Any:
        resp = await self._client.post(path, **kwargs)
        resp.raise_for_status()
        return resp.json()

    # ── Health ──

    async def health(self) -> dict[str, Any]:
        """Check server health."""
        return cast(dict[str, Any], await self._get("/v1/health"))

    async def backend_health(self) -> dict[str, Any]:
        """Per-backend health status and capabilities."""
        return cast(dict[str, Any], await self._get("/v1/health/backends"))

    async def providers(self) -> list[str]:
        """Names of the registered data providers."""
        data = await self._get("/v1/providers")
        return cast(list[str], data["providers"])

    # ── Triggers ──

    async def sync_all(self) -> JobResult:
        """Queue an incremental sync of every provider."""
        return cast(JobResult, await self._post("/v1/sync"))

    async def sync(self, provider: str) -> JobResult:
        """Queue an incremental sync of one provider.

        Raises:
            httpx.HTTPStatusError: 404 if the provider is unknown.
        """
        return cast(JobResult, await self._post(f"/v1/sync/{provider}"))

    async def upsert(self, provider: str, documents: list[dict[str, Any]]) -> JobResult:
        """Queue an upsert of flat documents (each with an ``id``) into one provider's indexes."""
        return cast(JobResult, await self._post(f"/v1/providers/{provider}/documents", json={"documents": documents}))

    async def delete(self, provider: str, ids: list[str]) -> JobResult:
        """Queue a deletion of record identifiers from one provider's indexes."""
        return cast(
            JobResult,
            await self._post(f"/v1/providers/{provider}/documents/delete", json={"ids": list(ids)}),
        )

    # ── Jobs ──

    async def jobs(self) -> list[JobResult]:
        """Snapshots of known jobs, oldest first."""
        return cast(list[JobResult], await self._get("/v1/jobs"))

    async def get_job(self, job_id: str, *, wait: float | None = None) -> JobResult:
        """Fetch a job snapshot, optionally letting the server wait up to *wait* seconds."""
        params = {"wait": wait} if wait else None
        timeout = httpx.Timeout(self._timeout + (wait or 0))
        return cast(JobResult, await self._get(f"/v1/jobs/{job_id}", params=params, timeout=timeout))

    async def wait_for_job(
        self,
        job_id: str,
        *,
        timeout: float | None = None,
        poll_interval: float = 5.0,
        raise_on_failure: bool = False,
    ) -> JobResult:
        """Long-poll a job until it reaches a terminal status.

        Args:
            job_id: Job identifier returned by a trigger.
            timeout: Give up after this many seconds (None = wait forever).
            poll_interval: Seconds the server waits per poll.
            raise_on_failure: Raise :class:`JobFailedError` unless the job succeeded.

        Raises:
            TimeoutError: If the job is still running after *timeout*.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            wait = poll_interval
            if deadline is not None:
                wait = max(0.0, min(poll_interval, deadline - time.monotonic()))
            job = await self.get_job(job_id, wait=wait)
            if job.get("status") in _TERMINAL_STATUSES:
                if raise_on_failure and job["status"] != "succeeded":
                    raise JobFailedError(job)
                return job
            if deadline is not None and time.monotonic() >= deadline:
                raise TimeoutError(f"Job {job_id} still {job.get('status')} after {timeout}s")


# ═══════════════════════════════════════════════════════════════════════════════
# Sync client (wraps AsyncSearchSyncClient)
# ═══════════════════════════════════════════════════════════════════════════════


class SearchSyncClient:
    """Synchronous Python client for the SearchSync API.

    Wraps :class:`AsyncSearchSyncClient` using ``asyncio.run``.

    Args:
        base_url: SearchSync server URL.
        timeout: Request timeout in seconds.
        **httpx_kwargs: Additional keyword arguments passed to ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8080",
        *,
        timeout: float = 60.0,
        **httpx_kwargs: Any,
    ) -> None:
        self._base_url = base_url
        self._timeout = timeout
        self._httpx_kwargs = httpx_kwargs

    def _run(self, coro: Coroutine[Any, Any, _T]) -> _T:
        """Run an async coroutine synchronously."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop and loop.is_running():
            # Already inside an event loop (e.g. Jupyter), run in a thread
            import concurrent.futures

            with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
                return pool.submit(asyncio.run, coro).result()
        return asyncio.run(coro)

    def _make_client(self) -> AsyncSearchSyncClient:
        return AsyncSearchSyncClient(
            self._base_url,
            timeout=self._timeout,
            **self._httpx_kwargs,
        )

    def _call(self, method: str, *args: Any, **kwargs: Any) -> Any:
        async def _invoke() -> Any:
            async with self._make_client() as c:
                return await getattr(c, method)(*args, **kwargs)

        return self._run(_invoke())

    def health(self) -> dict[str, Any]:
        """Check server health."""
        return cast(dict[str, Any], self._call("health"))

    def backend_health(self) -> dict[str, Any]:
        """Per-backend health status and capabilities."""
        return cast(dict[str, Any], self._call("backend_health"))

    def providers(self) -> list[str]:
        return cast(list[str], self._call("providers"))

    def sync_all(self) -> JobResult:
        return cast(JobResult, self._call("sync_all"))

    def sync(self, provider: str) -> JobResult:
        return cast(JobResult, self._call("sync", provider))

    def upsert(self, provider: str, documents: list[dict[str, Any]]) -> JobResult:
        return cast(JobResult, self._call("upsert", provider, documents))

    def delete(self, provider: str, ids: list[str]) -> JobResult:
        return cast(JobResult, self._call("delete", provider, ids))

    def jobs(self) -> list[JobResult]:
        return cast(list[JobResult], self._call("jobs"))

    def get_job(self, job_id: str, *, wait: float | None = None) -> JobResult:
        return cast(JobResult, self._call("get_job", job_id, wait=wait))

    def wait_for_job(
        self,
        job_id: str,
        *,
        timeout: float | None = None,
        poll_interval: float = 5.0,
        raise_on_failure: bool = False,
    ) -> JobResult:
        """Long-poll a job until it reaches a terminal status."""
        return cast(
            JobResult,
            self._call(
                "wait_for_job",
                job_id,
                timeout=timeout,
                poll_interval=poll_interval,
                raise_on_failure=raise_on_failure,
            ),
        )
