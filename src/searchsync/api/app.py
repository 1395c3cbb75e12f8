"""FastAPI application factory and lifecycle management."""

from __future__ import annotations

import importlib
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from searchsync import __version__
from searchsync.adapters.base.registry import AdapterRegistry
from searchsync.api.deps import set_scheduler
from searchsync.api.v1.router import router as v1_router
from searchsync.config.settings import Settings
from searchsync.core.exceptions import JobCancelledError, ProviderNotFoundError
from searchsync.core.scheduler import JobScheduler
from searchsync.providers.registry import DataProviderRegistry

logger = logging.getLogger(__name__)


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file, or from the environment alone.

    The file is *path*, then ``$SEARCHSYNC_CONFIG_FILE``, then
    ``searchsync-config.yaml`` in the working directory if it exists.
    """
    path = path or os.environ.get("SEARCHSYNC_CONFIG_FILE")
    yaml_path = Path(path) if path else Path("searchsync-config.yaml")
    if path or yaml_path.exists():
        logger.info("Loading configuration from %s", yaml_path)
        return Settings.from_yaml(yaml_path)
    return Settings()


def create_app(
    settings: Settings | None = None,
    providers: DataProviderRegistry | None = None,
    adapters: AdapterRegistry | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings. If None, loads from YAML or environment.
        providers: Pre-populated provider registry; providers listed in
            ``settings.sync.providers`` are added to it.
        adapters: Pre-populated adapter registry; backends listed in
            ``settings.backends`` are added to it.

    Returns:
        Configured FastAPI application.
    """
    if settings is None:
        settings = load_settings()
    provider_registry = providers if providers is not None else DataProviderRegistry()
    adapter_registry = adapters if adapters is not None else AdapterRegistry()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Manage application lifecycle (startup/shutdown)."""
        logger.info("Starting SearchSync v%s", __version__)

        await register_backends(adapter_registry, settings)
        register_providers(provider_registry, settings)

        scheduler = JobScheduler(settings.sync, provider_registry, adapter_registry)
        await scheduler.start()
        set_scheduler(scheduler)

        app.state.settings = settings
        app.state.scheduler = scheduler

        logger.info("SearchSync is ready to serve requests on port %d", settings.server.port)
        yield

        logger.info("Shutting down SearchSync...")
        await scheduler.stop()
        await adapter_registry.close()
        set_scheduler(None)
        logger.info("SearchSync shutdown complete")

    app = FastAPI(
        title="SearchSync",
        description=(
            "Incremental, checkpointed synchronization of application data "
            "into search backends through a single job queue."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ProviderNotFoundError)
    async def provider_not_found(request: Request, exc: ProviderNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(JobCancelledError)
    async def job_cancelled(request: Request, exc: JobCancelledError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    app.include_router(v1_router, prefix="/v1")

    return app


# ── Backend auto-registration ──

# Maps backend names to (module_path, class_name) for lazy import
_ADAPTER_MAP: dict[str, tuple[str, str]] = {
    "meilisearch": ("searchsync.adapters.meilisearch.adapter", "MeiliSearchAdapter"),
    "typesense": ("searchsync.adapters.typesense.adapter", "TypesenseAdapter"),
    "memory": ("searchsync.adapters.memory.adapter", "MemoryAdapter"),
}

# Backends that talk to a server and take its URL
_URL_ADAPTERS = {"meilisearch", "typesense"}


async def register_backends(registry: AdapterRegistry, settings: Settings) -> None:
    """Register and initialise backends declared in settings.

    For each entry in ``settings.backends`` that is enabled, the matching
    adapter class is imported, registered, and initialised. A backend that
    fails to initialise is skipped with a warning.
    """
    for backend_name, backend_cfg in settings.backends.items():
        if not backend_cfg.enabled:
            logger.info("Backend '%s' is disabled, skipping", backend_name)
            continue

        entry = _ADAPTER_MAP.get(backend_name)
        if entry is None:
            logger.warning(
                "Unknown backend '%s': no built-in adapter found. "
                "Add it to the adapter registry before creating the app.",
                backend_name,
            )
            continue

        module_path, class_name = entry
        try:
            module = importlib.import_module(module_path)
            adapter_class = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            logger.warning("Failed to import backend '%s': %s", backend_name, e)
            continue

        kwargs: dict[str, object] = {
            "index_prefix": settings.sync.index_prefix,
            "metadata_index": settings.sync.metadata_index,
        }
        if backend_name in _URL_ADAPTERS:
            if backend_cfg.hosts:
                kwargs["base_url"] = backend_cfg.hosts[0]
            if backend_cfg.api_key:
                kwargs["api_key"] = backend_cfg.api_key
            kwargs["timeout"] = backend_cfg.timeout
        if backend_name == "meilisearch":
            kwargs["task_timeout"] = settings.sync.task_timeout
            kwargs["task_poll_interval"] = settings.sync.task_poll_interval
        # Pass through any extra config
        kwargs.update(backend_cfg.extra)

        registry.register(backend_name, adapter_class)
        try:
            await registry.activate(backend_name, **kwargs)
            logger.info("Backend '%s' registered and initialised", backend_name)
        except Exception:
            logger.warning("Failed to initialise backend '%s'", backend_name, exc_info=True)


def register_providers(registry: DataProviderRegistry, settings: Settings) -> None:
    """Import the data provider classes listed in ``settings.sync.providers``."""
    for path in settings.sync.providers:
        registry.register_path(path)
