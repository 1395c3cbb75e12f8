"""SearchSync Python SDK — Client library for the SearchSync trigger API.

Provides both async and sync clients for interacting with a SearchSync server.

Quick start::

    from searchsync.client import SearchSyncClient

    client = SearchSyncClient("http://localhost:8080")

    job = client.sync("products")
    job = client.wait_for_job(job["id"], timeout=120)
    print(job["status"], job["affected"])
"""

from searchsync.client.client import AsyncSearchSyncClient, JobFailedError, SearchSyncClient

__all__ = ["AsyncSearchSyncClient", "JobFailedError", "SearchSyncClient"]
