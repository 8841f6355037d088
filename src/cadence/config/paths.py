"""Centralized path management for Cadence.

All state (config, database, logs) is stored under a single base directory.
The base directory can be overridden with the CADENCE_HOME environment
variable.

Default locations:
- Linux/macOS: ~/.cadence
- Windows: %USERPROFILE%\\.cadence
"""

import os
from functools import lru_cache
from pathlib import Path

ENV_VAR = "CADENCE_HOME"


@lru_cache(maxsize=1)
def get_cadence_home() -> Path:
    """Get the base directory for all Cadence data.

    Resolution order:
    1. CADENCE_HOME environment variable (if set)
    2. Platform default (~/.cadence)
    """
    if env_home := os.environ.get(ENV_VAR):
        return Path(env_home).expanduser().resolve()
    return Path.home() / ".cadence"


def get_config_path() -> Path:
    """Get the default config file path."""
    return get_cadence_home() / "config.toml"


def get_database_path() -> Path:
    """Get the SQLite database path."""
    return get_cadence_home() / "data" / "cadence.db"


def get_logs_path() -> Path:
    """Get the JSONL log directory."""
    return get_cadence_home() / "logs"
