"""Fixtures for API tests."""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from searchsync.adapters.memory.adapter import MemoryAdapter
from searchsync.api.app import create_app
from searchsync.config.settings import AdapterConfig, Settings
from searchsync.providers.registry import DataProviderRegistry
from tests.helpers import RecordingProvider


@pytest.fixture
def api_settings(settings: Settings) -> Settings:
    return settings.model_copy(update={"backends": {"memory": AdapterConfig()}})


@pytest.fixture
def client(api_settings: Settings, provider: RecordingProvider) -> Iterator[TestClient]:
    """Test client with a running scheduler, one provider, and the in-memory backend."""
    providers = DataProviderRegistry()
    providers.register(provider)
    app = create_app(api_settings, providers=providers)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def backend(client: TestClient) -> MemoryAdapter:
    adapter = client.app.state.scheduler.adapters.get("memory")  # type: ignore[attr-defined]
    assert isinstance(adapter, MemoryAdapter)
    return adapter
