"""
docarchive Configuration — Load and validate docarchive.yaml.

Usage:
    from docarchive.engine.config import load_config, get_config
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from docarchive.engine.errors import ArchiveConfigError

CONFIG_FILENAME = "docarchive.yaml"


# ---------------------------------------------------------------------------
# Pydantic models for docarchive.yaml
# ---------------------------------------------------------------------------

class RetryConfig(BaseModel):
    count: int = Field(default=3, ge=0)
    delay: float = Field(default=0.5, ge=0)
    backoff: str = "exponential"

    @field_validator("backoff")
    @classmethod
    def validate_backoff(cls, v: str) -> str:
        if v not in ("exponential", "linear", "fixed"):
            raise ValueError(f"backoff must be exponential/linear/fixed, got '{v}'")
        return v


class StoreConfig(BaseModel):
    base_url: str = "http://localhost:8000/api"
    timeout: float = 30.0
    connect_timeout: float = 10.0
    max_connections: int = 10
    max_keepalive: int = 5
    token: Optional[str] = None
    retry: RetryConfig = RetryConfig()


class ExplorerConfig(BaseModel):
    language: str = "primary"
    sort_by: str = "date"
    sort_desc: bool = True
    search_debounce_ms: int = 300
    view_mode: str = "list"
    page_size: int = 25

    @field_validator("language")
    @classmethod
    def validate_language(cls, v: str) -> str:
        if v not in ("primary", "secondary"):
            raise ValueError(f"language must be primary/secondary, got '{v}'")
        return v

    @field_validator("sort_by")
    @classmethod
    def validate_sort_by(cls, v: str) -> str:
        if v not in ("name", "date"):
            raise ValueError(f"sort_by must be name/date, got '{v}'")
        return v

    @field_validator("view_mode")
    @classmethod
    def validate_view_mode(cls, v: str) -> str:
        if v not in ("list", "grid"):
            raise ValueError(f"view_mode must be list/grid, got '{v}'")
        return v


class AdminConfig(BaseModel):
    seed_expansion: bool = True
    max_upload_size_mb: int = 50


class LoggingConfig(BaseModel):
    level: str = "INFO"
    directory: str = ".docarchive/logs"
    retention_days: int = 90


class ArchiveConfig(BaseModel):
    """Root model for docarchive.yaml."""
    name: str = "Document Archive"
    version: str = "1.0.0"
    environment: str = "dev"

    store: StoreConfig = StoreConfig()
    explorer: ExplorerConfig = ExplorerConfig()
    admin: AdminConfig = AdminConfig()
    logging: LoggingConfig = LoggingConfig()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        if v not in ("dev", "staging", "prod"):
            raise ValueError(f"environment must be dev/staging/prod, got '{v}'")
        return v


# ---------------------------------------------------------------------------
# Config Loading Functions
# ---------------------------------------------------------------------------

_config: Optional[ArchiveConfig] = None


def _find_project_root() -> Path:
    """Find the project root by looking for docarchive.yaml."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        if (parent / CONFIG_FILENAME).exists():
            return parent
    return current


def load_config(config_path: Optional[str] = None) -> ArchiveConfig:
    """
    Load and validate docarchive.yaml.

    Args:
        config_path: Explicit path to docarchive.yaml. If None, auto-discovers.

    Returns:
        Validated ArchiveConfig instance (defaults when no file exists).

    Raises:
        ArchiveConfigError on unreadable YAML or invalid values.
    """
    global _config

    if config_path is None:
        config_path = str(_find_project_root() / CONFIG_FILENAME)

    path = Path(config_path)
    if not path.exists():
        _config = ArchiveConfig()
        return _config

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ArchiveConfigError(f"Cannot parse {path}: {e}", object_ref=str(path)) from e

    # Allow the archive settings to be nested under an "archive:" key
    archive_data = raw.get("archive", {})
    config_data = {
        "name": archive_data.get("name", raw.get("name", "Document Archive")),
        "version": archive_data.get("version", raw.get("version", "1.0.0")),
        "environment": archive_data.get("environment", raw.get("environment", "dev")),
        "store": raw.get("store", {}),
        "explorer": raw.get("explorer", {}),
        "admin": raw.get("admin", {}),
        "logging": raw.get("logging", {}),
    }

    try:
        _config = ArchiveConfig(**config_data)
    except ValidationError as e:
        raise ArchiveConfigError(
            f"Invalid configuration in {path}",
            object_ref=str(path),
            validation_errors=e.errors(),
        ) from e
    return _config


def get_config() -> ArchiveConfig:
    """Get the currently loaded config, loading if necessary."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Forget the loaded config (tests, reload after edits)."""
    global _config
    _config = None
