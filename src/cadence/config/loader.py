"""Configuration loading from TOML files and environment variables."""

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from cadence.config.models import CadenceConfig, ConfigError
from cadence.config.paths import get_config_path

DATABASE_URL_ENV = "CADENCE_DATABASE_URL"
LOG_LEVEL_ENV = "CADENCE_LOG_LEVEL"


def _get_default_config_paths() -> list[Path]:
    """Get ordered list of default config file locations."""
    return [
        Path("config.toml"),  # Current directory
        get_config_path(),  # ~/.cadence/config.toml (or CADENCE_HOME)
        Path("/etc/cadence/config.toml"),  # System-wide
    ]


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Let environment variables override file values."""
    if url := os.environ.get(DATABASE_URL_ENV):
        config["database_url"] = url
    if level := os.environ.get(LOG_LEVEL_ENV):
        config.setdefault("logging", {})["level"] = level
    return config


def load_config(path: Path | None = None) -> CadenceConfig:
    """Load configuration from TOML file.

    Args:
        path: Explicit path to config file. If None, searches default locations
            and falls back to defaults when none exists.

    Returns:
        Validated CadenceConfig instance.

    Raises:
        FileNotFoundError: If an explicit config file does not exist.
        ConfigError: If the config file is invalid.
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        for default_path in _get_default_config_paths():
            expanded = default_path.expanduser()
            if expanded.exists():
                config_path = expanded
                break

    raw_config: dict[str, Any] = {}
    if config_path is not None:
        try:
            with config_path.open("rb") as f:
                raw_config = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    raw_config = _apply_env_overrides(raw_config)

    try:
        return CadenceConfig.model_validate(raw_config)
    except ValidationError as e:
        source = config_path or "defaults"
        raise ConfigError(f"Invalid configuration ({source}): {e}") from e


def get_default_config() -> CadenceConfig:
    """Get a default configuration for development/testing."""
    return CadenceConfig()
