"""Task tracker — Collects asynchronous backend operations and settles them."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from searchsync.core.exceptions import BackendTaskFailure

if TYPE_CHECKING:
    from searchsync.adapters.base.adapter import BackendAdapter, TaskHandle, TaskOutcome

logger = logging.getLogger(__name__)


class TaskTracker:
    """Accumulates task handles issued during one run.

    ``settle()`` waits for all of them concurrently and raises if any ends in
    a non-success state.
    """

    def __init__(self, adapter: BackendAdapter, index: str) -> None:
        self._adapter = adapter
        self._index = index
        self._pending: list[TaskHandle] = []

    def add(self, handle: TaskHandle | None) -> None:
        if handle is not None:
            self._pending.append(handle)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def settle(self) -> list[TaskOutcome]:
        """Wait for every tracked task to reach a terminal state.

        Raises:
            BackendTaskFailure: If any task did not succeed.
        """
        handles, self._pending = self._pending, []
        if not handles:
            return []
        logger.debug("Waiting for %d task(s) on %s", len(handles), self._index)
        results = await asyncio.gather(
            *(self._adapter.wait_for_task(h) for h in handles),
            return_exceptions=True,
        )
        # All polls have finished by now.
        for result in results:
            if isinstance(result, BaseException):
                raise result
        outcomes: list[TaskOutcome] = list(results)  # type: ignore[arg-type]
        failures = [o for o in outcomes if not o.succeeded]
        if failures:
            raise BackendTaskFailure(self._index, failures)
        return outcomes
