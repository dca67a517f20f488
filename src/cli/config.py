"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. --config <path> CLI flag
2. ./logisync.yaml (working directory)
3. ~/.logisync/config.yaml (user home)

Environment variables override YAML: LOGISYNC_<SECTION>_<KEY>.
${VAR} references in YAML values resolve from environment at load time.
Without a config file, defaults plus env overrides are used.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, field_validator

from src.services.order_constants import resolve_department_key
from src.services.tracking_client import DEFAULT_APPID, DEFAULT_BASE_URL, DEFAULT_OUTERID

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

ENV_PREFIX = "LOGISYNC_"


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} references in a string from environment variables.

    Args:
        value: String potentially containing ${VAR} references.

    Returns:
        String with all ${VAR} references replaced by their env values.
        Missing env vars resolve to empty string.
    """
    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    """Recursively resolve ${VAR} references in a nested data structure."""
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class ServerConfig(BaseModel):
    """Configuration for the API server process."""

    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "info"


class DatabaseConfig(BaseModel):
    """Database connection. None falls back to DATABASE_URL or local SQLite."""

    url: str | None = None


class TrackingConfig(BaseModel):
    """Tracking provider connection and reconciliation policy."""

    base_url: str = DEFAULT_BASE_URL
    appid: str = DEFAULT_APPID
    outerid: str = DEFAULT_OUTERID
    request_timeout: float = 30.0
    call_timeout: float = 60.0
    max_retries: int = 0
    retry_base_delay: float = 1.0
    poll_interval: float = 2.0
    poll_attempts: int = 1
    max_concurrency: int = 1

    @field_validator("appid", "outerid", mode="before")
    @classmethod
    def stringify_ids(cls, value: Any) -> Any:
        """Env overrides coerce numeric ids to int; ids are strings."""
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("max_concurrency", "poll_attempts")
    @classmethod
    def at_least_one(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @field_validator("max_retries")
    @classmethod
    def not_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must not be negative")
        return value


class ImporterConfig(BaseModel):
    """Import validation and storage settings."""

    default_department: str | None = None
    store_timeout: float = 30.0
    start_row: int = 2

    @field_validator("default_department")
    @classmethod
    def known_department(cls, value: str | None) -> str | None:
        if not value:
            return None
        resolved = resolve_department_key(value)
        if resolved is None:
            raise ValueError(f"unknown department: {value}")
        return resolved


class LogiSyncConfig(BaseModel):
    """Top-level configuration for LogiSync."""

    server: ServerConfig = ServerConfig()
    database: DatabaseConfig = DatabaseConfig()
    tracking: TrackingConfig = TrackingConfig()
    importer: ImporterConfig = ImporterConfig()


def _find_config_file() -> Path | None:
    """Search for config file in standard locations.

    Returns:
        Path to config file if found, None otherwise.
    """
    candidates = [
        Path.cwd() / "logisync.yaml",
        Path.cwd() / "logisync.yml",
        Path.home() / ".logisync" / "config.yaml",
        Path.home() / ".logisync" / "config.yml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply LOGISYNC_<SECTION>_<KEY> env var overrides to config data.

    For example, ``LOGISYNC_TRACKING_MAX_CONCURRENCY`` maps to section
    ``tracking``, field ``max_concurrency``.

    Args:
        data: Parsed YAML config dict.

    Returns:
        Config dict with env var overrides applied.
    """
    known_sections = sorted(
        LogiSyncConfig.model_fields.keys(), key=len, reverse=True
    )
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX):].lower()
        matched_section = None
        matched_field = None
        for section in known_sections:
            section_prefix = section + "_"
            if suffix.startswith(section_prefix):
                matched_section = section
                matched_field = suffix[len(section_prefix):]
                break
        if matched_section is None or not matched_field:
            continue
        if matched_section not in data or data[matched_section] is None:
            data[matched_section] = {}
        if isinstance(data[matched_section], dict):
            # Coerce to int, bool, or keep as string
            try:
                data[matched_section][matched_field] = int(value)
            except ValueError:
                if value.lower() in ("true", "false"):
                    data[matched_section][matched_field] = value.lower() == "true"
                else:
                    data[matched_section][matched_field] = value
    return data


def load_config(config_path: str | None = None) -> LogiSyncConfig:
    """Load LogiSync configuration from YAML file with env var resolution.

    Args:
        config_path: Explicit path to config file. If None, searches
            standard locations (cwd, then ~/.logisync/).

    Returns:
        Parsed and validated LogiSyncConfig.

    Raises:
        FileNotFoundError: If an explicit config_path does not exist.
    """
    raw_data: dict[str, Any] = {}
    if config_path:
        path: Path | None = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        path = _find_config_file()

    if path is not None:
        logger.info("Loading config from %s", path)
        with open(path, encoding="utf-8") as f:
            raw_data = yaml.safe_load(f) or {}

    # Resolve ${VAR} references
    data = _resolve_env_vars_recursive(raw_data)

    # Apply LOGISYNC_ env var overrides
    data = _apply_env_overrides(data)

    return LogiSyncConfig(**data)
