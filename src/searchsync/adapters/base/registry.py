"""Adapter Registry — Backend classes by name, and the backends the scheduler writes to.

Active backends keep the order they were activated in; a full sync walks
them in that order.
"""

from __future__ import annotations

import logging
from typing import Any

from searchsync.adapters.base.adapter import AdapterHealth, BackendAdapter

logger = logging.getLogger(__name__)


class AdapterNotFoundError(Exception):
    """Raised when a backend name is neither registered nor active."""


class AdapterRegistry:
    """Backend classes keyed by configuration name, plus the active instances.

    Example:
        >>> registry = AdapterRegistry()
        >>> registry.register("typesense", TypesenseAdapter)
        >>> await registry.activate("typesense", base_url="http://localhost:8108")
        >>> [a.name for a in registry.active()]
        ['typesense']
    """

    def __init__(self) -> None:
        self._classes: dict[str, type[BackendAdapter]] = {}
        self._active: dict[str, BackendAdapter] = {}

    def register(self, name: str, adapter_class: type[BackendAdapter]) -> None:
        if name in self._classes:
            logger.warning("Replacing backend class for %s", name)
        self._classes[name] = adapter_class

    async def activate(self, name: str, **kwargs: Any) -> BackendAdapter:
        """Build the backend registered as *name*, connect it and make it active.

        Raises:
            AdapterNotFoundError: If no class is registered under *name*.
            ConnectionError: If the backend cannot be reached.
        """
        try:
            adapter_class = self._classes[name]
        except KeyError:
            raise AdapterNotFoundError(
                f"No adapter registered with name '{name}'. Known backends: {sorted(self._classes)}"
            ) from None
        return await self.add(adapter_class(**kwargs))

    async def add(self, adapter: BackendAdapter, *, initialize: bool = True) -> BackendAdapter:
        """Make an already constructed backend active."""
        if initialize:
            await adapter.initialize()
        self._active[adapter.name] = adapter
        logger.info("Backend %s is active (%s checkpoints)", adapter.name, adapter.checkpoint_strategy.value)
        return adapter

    def get(self, name: str) -> BackendAdapter:
        """Active backend *name*.

        Raises:
            AdapterNotFoundError: If *name* is not active.
        """
        adapter = self._active.get(name)
        if adapter is None:
            raise AdapterNotFoundError(f"Backend '{name}' is not initialized")
        return adapter

    def active(self) -> list[BackendAdapter]:
        return list(self._active.values())

    @property
    def names(self) -> list[str]:
        return list(self._active)

    async def check_health(self) -> dict[str, AdapterHealth]:
        """Health of every active backend; a raising check counts as unhealthy."""
        results: dict[str, AdapterHealth] = {}
        for name, adapter in self._active.items():
            try:
                results[name] = await adapter.health_check()
            except Exception as e:
                results[name] = AdapterHealth(status="unhealthy", message=str(e))
        return results

    async def close(self) -> None:
        """Shut every active backend down, continuing past failures."""
        for name, adapter in self._active.items():
            try:
                await adapter.shutdown()
            except Exception:
                logger.warning("Error shutting down backend %s", name, exc_info=True)
        self._active.clear()
