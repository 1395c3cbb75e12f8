"""Application settings — Pydantic-based configuration with YAML and env var support.

Configuration is loaded from (in order of precedence):
  1. Environment variables (SEARCHSYNC_ prefix)
  2. YAML config file (if specified)
  3. Default values
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings


class ServerSettings(BaseModel):
    """HTTP server configuration."""

    host: str = Field(default="0.0.0.0", description="Server bind address")
    port: int = Field(default=8080, description="Server port")
    cors_origins: list[str] = Field(default=["*"], description="Allowed CORS origins")


class SyncSettings(BaseModel):
    """Synchronization behavior.

    Upsert and delete batches are sized independently because backends
    price the two operations differently.
    """

    index_prefix: str = Field(default="", description="Prefix prepended to every index name")
    metadata_index: str = Field(default="MetaCollections", description="Metadata index for checkpoint documents")
    sync_on_startup: bool = Field(default=True, description="Queue a full sync before serving triggers")
    interval_seconds: float | None = Field(default=None, gt=0, description="Periodic full sync interval (None = off)")
    upsert_batch_size: int = Field(default=500, ge=1, description="Records per upsert batch")
    delete_batch_size: int = Field(default=24, ge=1, description="Identifiers per delete batch")
    reset_checkpoint_on_empty_index: bool = Field(
        default=True,
        description="Force a full resync when an index with a checkpoint holds no documents",
    )
    task_timeout: float = Field(default=300.0, gt=0, description="Max seconds to wait for one backend task")
    task_poll_interval: float = Field(default=0.05, gt=0, description="Initial backend task poll interval")
    shutdown_timeout: float = Field(default=30.0, ge=0, description="Seconds to let an in-flight job stop")
    job_history: int = Field(default=100, ge=1, description="Finished jobs kept for inspection")
    providers: list[str] = Field(
        default_factory=list,
        description="Data provider classes to load, as 'package.module:ClassName'",
    )


class AdapterConfig(BaseModel):
    """Configuration for a single backend adapter."""

    enabled: bool = Field(default=True, description="Whether this adapter is active")
    hosts: list[str] = Field(default_factory=list, description="Backend host URLs")
    api_key: str | None = Field(default=None, description="API key authentication")
    timeout: float = Field(default=30.0, gt=0, description="HTTP request timeout in seconds")
    extra: dict[str, Any] = Field(default_factory=dict, description="Adapter-specific options")

    @field_validator("hosts", mode="before")
    @classmethod
    def _parse_hosts(cls, v: Any) -> list[str]:
        """Parse hosts from JSON string (env var) or list."""
        if isinstance(v, str):
            import json

            try:
                parsed = json.loads(v)
                if isinstance(parsed, list):
                    return [str(h) for h in parsed]
            except (json.JSONDecodeError, TypeError):
                pass
            # Single host as plain string
            return [v] if v else []
        return list(v)


class ObservabilitySettings(BaseModel):
    """Observability configuration."""

    log_level: str = Field(default="info", description="Log level: debug, info, warning, error")
    log_format: str = Field(default="json", description="Log format: json, console")


class Settings(BaseSettings):
    """Root application settings.

    Configuration is loaded from environment variables with the SEARCHSYNC_ prefix.
    Nested settings use double underscores: SEARCHSYNC_SYNC__UPSERT_BATCH_SIZE=1000

    Example:
        SEARCHSYNC_SERVER__PORT=9090
        SEARCHSYNC_SYNC__INDEX_PREFIX=prod_
        SEARCHSYNC_BACKENDS__TYPESENSE__HOSTS=http://localhost:8108
    """

    model_config = {
        "env_prefix": "SEARCHSYNC_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    # Application metadata
    app_name: str = Field(default="SearchSync", description="Application name")
    debug: bool = Field(default=False, description="Debug mode")

    # Component settings
    server: ServerSettings = Field(default_factory=ServerSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    backends: dict[str, AdapterConfig] = Field(default_factory=dict, description="Backend adapter configurations")
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    @classmethod
    def from_yaml(cls, path: str | Path) -> Settings:
        """Load settings from a YAML configuration file.

        Values from the YAML file are used as defaults; environment variables
        still take precedence.

        Args:
            path: Path to the YAML config file.

        Returns:
            Populated Settings instance.
        """
        import yaml  # type: ignore[import-untyped]

        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)
