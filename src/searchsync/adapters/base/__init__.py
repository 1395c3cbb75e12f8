"""Base adapter interface — Abstract classes for backend connectors."""

from searchsync.adapters.base.adapter import (
    AdapterHealth,
    BackendAdapter,
    BatchOutcome,
    ImportOutcome,
    TaskHandle,
    TaskOutcome,
    TaskStatus,
)
from searchsync.adapters.base.registry import AdapterRegistry

__all__ = [
    "AdapterHealth",
    "AdapterRegistry",
    "BackendAdapter",
    "BatchOutcome",
    "ImportOutcome",
    "TaskHandle",
    "TaskOutcome",
    "TaskStatus",
]
