"""Integration test fixtures — Search backends running in Docker.

Expects backends to be running via, for example:
    docker run -d -p 7700:7700 -e MEILI_MASTER_KEY=test-master-key getmeili/meilisearch:v1.10
    docker run -d -p 8108:8108 typesense/typesense:27.1 --data-dir /tmp --api-key=test-api-key

Each test works under its own index prefix and removes what it created.
"""

from __future__ import annotations

import os
import time
import uuid

import httpx
import pytest

MEILISEARCH_URL = os.environ.get("SEARCHSYNC_TEST_MEILISEARCH_URL", "http://localhost:7700")
MEILISEARCH_KEY = os.environ.get("SEARCHSYNC_TEST_MEILISEARCH_KEY", "test-master-key")
TYPESENSE_URL = os.environ.get("SEARCHSYNC_TEST_TYPESENSE_URL", "http://localhost:8108")
TYPESENSE_KEY = os.environ.get("SEARCHSYNC_TEST_TYPESENSE_KEY", "test-api-key")


def _wait_for_service(url: str, timeout: float = 10.0) -> bool:
    """Block until *url* returns HTTP 200, or timeout."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            r = httpx.get(url, timeout=5)
            if r.status_code == 200:
                return True
        except httpx.HTTPError:
            pass
        time.sleep(1)
    return False


@pytest.fixture(scope="session")
def meilisearch_ready() -> str:
    """Ensure MeiliSearch is running."""
    if not _wait_for_service(f"{MEILISEARCH_URL}/health"):
        pytest.skip(f"MeiliSearch not available at {MEILISEARCH_URL}")
    return MEILISEARCH_URL


@pytest.fixture(scope="session")
def typesense_ready() -> str:
    """Ensure Typesense is running."""
    if not _wait_for_service(f"{TYPESENSE_URL}/health"):
        pytest.skip(f"Typesense not available at {TYPESENSE_URL}")
    return TYPESENSE_URL


@pytest.fixture
def index_prefix() -> str:
    return f"it_{uuid.uuid4().hex[:8]}_"


@pytest.fixture(scope="session")
def meilisearch_key() -> str:
    return MEILISEARCH_KEY


@pytest.fixture(scope="session")
def typesense_key() -> str:
    return TYPESENSE_KEY
