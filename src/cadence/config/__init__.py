"""Configuration management."""

from cadence.config.loader import get_default_config, load_config
from cadence.config.models import (
    CadenceConfig,
    ConfigError,
    LoggingConfig,
    SchedulerConfig,
    SeedAutomation,
)
from cadence.config.paths import get_cadence_home, get_config_path

__all__ = [
    "CadenceConfig",
    "ConfigError",
    "LoggingConfig",
    "SchedulerConfig",
    "SeedAutomation",
    "get_cadence_home",
    "get_config_path",
    "get_default_config",
    "load_config",
]
