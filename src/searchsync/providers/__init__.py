"""Data provider layer — Sources of the records kept in sync."""

from searchsync.providers.base import DataProvider
from searchsync.providers.explicit import ExplicitChangesProvider
from searchsync.providers.registry import DataProviderRegistry

__all__ = ["DataProvider", "DataProviderRegistry", "ExplicitChangesProvider"]
