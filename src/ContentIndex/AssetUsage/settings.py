# === NAVMAP v1 ===
# {
#   "module": "ContentIndex.AssetUsage.settings",
#   "purpose": "Define configuration models, default locations, and environment overrides",
#   "sections": [
#     {"id": "paths", "name": "Default Locations", "anchor": "PTH", "kind": "infra"},
#     {"id": "logging", "name": "LoggingConfiguration", "anchor": "class-loggingconfiguration", "kind": "class"},
#     {"id": "database", "name": "DatabaseConfiguration", "anchor": "class-databaseconfiguration", "kind": "class"},
#     {"id": "reconcile", "name": "ReconcileConfiguration", "anchor": "class-reconcileconfiguration", "kind": "class"},
#     {"id": "events", "name": "EventsConfiguration", "anchor": "class-eventsconfiguration", "kind": "class"},
#     {"id": "settings", "name": "AssetUsageSettings", "anchor": "class-assetusagesettings", "kind": "class"},
#     {"id": "accessor", "name": "get_settings", "anchor": "function-get-settings", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Configuration models for the asset usage index.

Settings are plain pydantic models grouped under :class:`AssetUsageSettings`,
which additionally reads environment overrides prefixed with ``ASSET_USAGE_``.
Nested sections use a double underscore, for example
``ASSET_USAGE_DATABASE__DB_PATH=/srv/usage.duckdb``.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Optional

import platformdirs
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

__all__ = [
    "DATA_ROOT",
    "LOG_DIR",
    "DEFAULT_DB_PATH",
    "LoggingConfiguration",
    "DatabaseConfiguration",
    "ReconcileConfiguration",
    "EventsConfiguration",
    "AssetUsageSettings",
    "get_settings",
    "reset_settings_cache",
]

# Directories are created lazily by the components that write into them.
DATA_ROOT = Path(platformdirs.user_data_dir("asset-usage"))
LOG_DIR = DATA_ROOT / "logs"
DEFAULT_DB_PATH = DATA_ROOT / "catalog" / "asset_usage.duckdb"


class LoggingConfiguration(BaseModel):
    """Logging-related configuration for the usage index."""

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    max_log_size_mb: int = Field(default=100, gt=0, description="Maximum size of rotated log files")
    retention_days: int = Field(default=30, ge=1, description="Retention period for log files")
    log_dir: Optional[Path] = Field(default=None, description="Directory for JSONL log files")

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        """Normalise logging levels and ensure they match the supported set."""

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        upper = value.upper()
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        return upper

    model_config = {"validate_assignment": True}


class DatabaseConfiguration(BaseModel):
    """DuckDB usage store configuration."""

    db_path: Optional[Path] = Field(
        default=None,
        description="Path to DuckDB file; defaults to <user data dir>/asset-usage/catalog/asset_usage.duckdb",
    )
    readonly: bool = Field(default=False, description="Open database in read-only mode")
    enable_locks: bool = Field(
        default=True,
        description="Enable file-based locks to serialize writers; readers bypass locks",
    )
    threads: Optional[int] = Field(
        default=None,
        description="Number of threads for query execution; None uses CPU count",
    )
    memory_limit: Optional[str] = Field(
        default=None,
        description="Memory limit as string (e.g., '2GB'); None uses auto",
    )

    model_config = {"validate_assignment": True}


class ReconcileConfiguration(BaseModel):
    """Knobs for full reconciliation runs."""

    progress_every: int = Field(
        default=500,
        ge=1,
        description="Log a progress line every N processed nodes",
    )
    dry_run: bool = Field(
        default=False,
        description="Compute the diff without writing to the usage store",
    )

    model_config = {"validate_assignment": True}


class EventsConfiguration(BaseModel):
    """Observability event sinks."""

    enable_stdout: bool = Field(default=False, description="Write events to stdout as JSON lines")
    enable_file: bool = Field(default=False, description="Append events to a JSONL file")
    file_path: Optional[Path] = Field(default=None, description="Target file for the JSONL sink")
    service: str = Field(default="asset-usage", description="Service name stamped on events")

    model_config = {"validate_assignment": True}


class AssetUsageSettings(BaseSettings):
    """Aggregated settings with ``ASSET_USAGE_`` environment overrides."""

    logging: LoggingConfiguration = Field(default_factory=LoggingConfiguration)
    database: DatabaseConfiguration = Field(default_factory=DatabaseConfiguration)
    reconcile: ReconcileConfiguration = Field(default_factory=ReconcileConfiguration)
    events: EventsConfiguration = Field(default_factory=EventsConfiguration)

    model_config = SettingsConfigDict(
        env_prefix="ASSET_USAGE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    def resolved_db_path(self) -> Path:
        """Return the configured DuckDB path or the platform default."""

        return self.database.db_path or DEFAULT_DB_PATH


_SETTINGS_CACHE: Optional[AssetUsageSettings] = None
_SETTINGS_LOCK = threading.Lock()


def get_settings() -> AssetUsageSettings:
    """Return process-wide settings, reading the environment on first use.

    Raises:
        ConfigurationError: If an environment override fails validation.
    """

    global _SETTINGS_CACHE  # noqa: PLW0603

    with _SETTINGS_LOCK:
        if _SETTINGS_CACHE is None:
            try:
                _SETTINGS_CACHE = AssetUsageSettings()
            except ValidationError as exc:
                raise ConfigurationError(f"Invalid asset usage settings: {exc}") from exc
        return _SETTINGS_CACHE


def reset_settings_cache() -> None:
    """Invalidate the cached settings so the environment is read again."""

    global _SETTINGS_CACHE  # noqa: PLW0603

    with _SETTINGS_LOCK:
        _SETTINGS_CACHE = None
