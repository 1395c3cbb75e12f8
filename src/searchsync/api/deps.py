"""API dependencies — Dependency injection for FastAPI endpoints."""

from __future__ import annotations

from searchsync.core.scheduler import JobScheduler

# Global scheduler instance (set during application lifespan)
_scheduler: JobScheduler | None = None


def set_scheduler(scheduler: JobScheduler | None) -> None:
    """Set the global scheduler instance (called during app lifespan)."""
    global _scheduler
    _scheduler = scheduler


def get_scheduler() -> JobScheduler:
    """Get the global job scheduler.

    Raises:
        RuntimeError: If the scheduler is not initialized.
    """
    if _scheduler is None:
        raise RuntimeError("SearchSync scheduler not initialized. Is the server running?")
    return _scheduler
