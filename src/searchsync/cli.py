"""CLI entry point for the SearchSync server."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from searchsync.config.settings import Settings

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "SEARCHSYNC_CONFIG_FILE"


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point for the SearchSync server."""
    parser = argparse.ArgumentParser(
        prog="searchsync",
        description="SearchSync: incremental synchronization into search backends",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Server bind address (overrides config)",
    )
    parser.add_argument(
        "--port",
        "-p",
        type=int,
        default=None,
        help="Server port (overrides config)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["debug", "info", "warning", "error"],
        default=None,
        help="Log level (overrides config)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one full sync in-process and exit (non-zero status on failure)",
    )
    parser.add_argument(
        "--provider",
        action="append",
        default=None,
        help="With --once, sync only this provider (repeatable)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"SearchSync {_get_version()}",
    )

    args = parser.parse_args(argv)

    from searchsync.api.app import load_settings
    from searchsync.observability.logging import setup_logging

    if args.config:
        config_path = Path(args.config)
        if not config_path.exists():
            print(f"Error: Config file not found: {config_path}", file=sys.stderr)
            sys.exit(1)
        # Lets the app factory find the file in reload mode
        os.environ[CONFIG_ENV_VAR] = str(config_path.resolve())
    settings = load_settings(args.config)

    # Apply CLI overrides
    if args.host:
        settings.server.host = args.host
    if args.port:
        settings.server.port = args.port
    if args.log_level:
        settings.observability.log_level = args.log_level

    setup_logging(settings.observability)

    if args.once:
        sys.exit(asyncio.run(run_once(settings, args.provider)))

    import uvicorn

    if args.reload:
        uvicorn.run(
            "searchsync.api.app:create_app",
            factory=True,
            host=settings.server.host,
            port=settings.server.port,
            reload=True,
            log_level=settings.observability.log_level.lower(),
        )
        return

    from searchsync.api.app import create_app

    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.observability.log_level.lower(),
        log_config=None,
    )


async def run_once(settings: Settings, providers: list[str] | None = None) -> int:
    """Register backends and providers, run one sync job, and shut down.

    Returns:
        Process exit status: 0 on success, 1 if the job failed or nothing could be synced.
    """
    from searchsync.adapters.base.registry import AdapterRegistry
    from searchsync.api.app import register_backends, register_providers
    from searchsync.core.exceptions import ProviderNotFoundError
    from searchsync.core.scheduler import JobScheduler
    from searchsync.providers.registry import DataProviderRegistry

    provider_registry = DataProviderRegistry()
    register_providers(provider_registry, settings)
    if providers:
        try:
            provider_registry.check(providers)
        except ProviderNotFoundError as e:
            logger.error("%s", e)
            return 1

    adapters = AdapterRegistry()
    await register_backends(adapters, settings)
    if not adapters.names:
        logger.error("No backend could be initialised")
        return 1

    sync_settings = settings.sync.model_copy(update={"sync_on_startup": False, "interval_seconds": None})
    scheduler = JobScheduler(sync_settings, provider_registry, adapters)
    await scheduler.start()
    try:
        if providers:
            handles = [scheduler.sync(name) for name in providers]
        else:
            handles = [scheduler.sync_all()]
        status = 0
        for handle in handles:
            try:
                affected = await handle.wait()
                logger.info("Job %s succeeded (%d affected)", handle.id, affected)
            except Exception as e:
                logger.error("Job %s did not succeed: %s", handle.id, e)
                status = 1
            print(json.dumps(handle.info().model_dump(mode="json"), indent=2))
        return status
    finally:
        await scheduler.stop()
        await adapters.close()


def _get_version() -> str:
    """Get the package version."""
    from searchsync import __version__

    return __version__


if __name__ == "__main__":
    main()
