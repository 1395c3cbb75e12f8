"""Shared test fixtures and configuration."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable

import pytest

from searchsync.adapters.memory.adapter import MemoryAdapter
from searchsync.config.settings import Settings, SyncSettings
from tests.helpers import RecordingProvider


@pytest.fixture
def settings() -> Settings:
    """Create a test Settings instance with defaults."""
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        debug=True,
        sync={"sync_on_startup": False, "shutdown_timeout": 5},
    )


@pytest.fixture
def sync_settings(settings: Settings) -> SyncSettings:
    return settings.sync


@pytest.fixture
def make_provider() -> Callable[..., RecordingProvider]:
    """Factory for additional providers."""
    return RecordingProvider


@pytest.fixture
def provider() -> RecordingProvider:
    """Provider with two records already stored."""
    p = RecordingProvider()
    p.put("1", title="Desk lamp", category="lighting", price=19.9)
    p.put("2", title="Floor lamp", category="lighting", price=49.0)
    return p


@pytest.fixture
async def memory_adapter() -> AsyncIterator[MemoryAdapter]:
    """Initialized in-memory backend with alias checkpoints and synonyms."""
    adapter = MemoryAdapter()
    await adapter.initialize()
    yield adapter
    await adapter.shutdown()
