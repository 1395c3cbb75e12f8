"""Data provider registry — Providers keyed by name.

Providers are registered either as instances or as zero-argument factories.
Factories are invoked once per job, so each job sees a fresh, job-scoped
provider (e.g. one holding its own database session).
"""

from __future__ import annotations

import importlib
import logging
from collections.abc import Callable, Iterable

from searchsync.core.exceptions import ProviderNotFoundError
from searchsync.providers.base import DataProvider

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[], DataProvider]


class DataProviderRegistry:
    """Registry of data providers, in registration order.

    Example:
        >>> registry = DataProviderRegistry()
        >>> registry.register(ProductProvider())
        >>> registry.register_factory("orders", lambda: OrderProvider(session_factory()))
        >>> registry.resolve(["orders"])
    """

    def __init__(self) -> None:
        self._factories: dict[str, ProviderFactory] = {}

    def register(self, provider: DataProvider) -> None:
        """Register a provider instance, shared across jobs."""
        self.register_factory(provider.name, lambda: provider)

    def register_factory(self, name: str, factory: ProviderFactory) -> None:
        """Register a factory that builds a fresh provider for each job."""
        if name in self._factories:
            logger.warning("Overwriting existing provider registration: %s", name)
        self._factories[name] = factory
        logger.info("Registered data provider: %s", name)

    def register_path(self, path: str) -> None:
        """Register a provider class given as ``"package.module:ClassName"``.

        The class is instantiated without arguments once per job.

        Raises:
            ValueError: If *path* is malformed or does not name a ``DataProvider``.
        """
        module_path, sep, attr = path.partition(":")
        if not sep or not module_path or not attr:
            raise ValueError(f"Provider path must look like 'package.module:ClassName', got '{path}'")
        module = importlib.import_module(module_path)
        provider_cls = getattr(module, attr)
        if not (isinstance(provider_cls, type) and issubclass(provider_cls, DataProvider)):
            raise ValueError(f"'{path}' is not a DataProvider subclass")
        self.register_factory(provider_cls().name, provider_cls)

    def __contains__(self, name: object) -> bool:
        return name in self._factories

    def check(self, names: Iterable[str]) -> None:
        """Raise if any of *names* is not registered.

        Raises:
            ProviderNotFoundError: For the first unknown name.
        """
        for name in names:
            if name not in self._factories:
                raise ProviderNotFoundError(
                    f"No data provider registered with name '{name}'. "
                    f"Available providers: {self.names}"
                )

    def create(self, name: str) -> DataProvider:
        """Build the provider registered under *name*."""
        self.check([name])
        return self._factories[name]()

    def resolve(self, names: Iterable[str] | None = None) -> list[DataProvider]:
        """Build the providers for one job.

        Args:
            names: Provider names to include, in order; ``None`` selects every
                registered provider in registration order.
        """
        selected = list(self._factories) if names is None else list(names)
        self.check(selected)
        return [self._factories[name]() for name in selected]

    @property
    def names(self) -> list[str]:
        """Registered provider names."""
        return list(self._factories)
