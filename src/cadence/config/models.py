"""Configuration models using Pydantic."""

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from cadence.config.paths import get_database_path


class ConfigError(Exception):
    """Configuration error."""

    pass


class SchedulerConfig(BaseModel):
    """Configuration for the automation polling loop."""

    poll_interval: float = Field(default=15.0, gt=0)
    claim_limit: int = Field(default=10, gt=0)
    # None = handlers may run as long as they like
    handler_timeout: float | None = Field(default=None, gt=0)
    # Default timezone for automations created without one
    timezone: str = "UTC"


class LoggingConfig(BaseModel):
    """Configuration for log output."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    use_rich: bool = True
    log_to_file: bool = False
    retention_days: int = Field(default=7, gt=0)

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class SeedAutomation(BaseModel):
    """An automation created at startup when none with its name exists."""

    name: str
    action_type: str
    schedule_kind: Literal["interval", "oneshot", "cron"]
    schedule_expr: str
    timezone: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True


class CadenceConfig(BaseModel):
    """Root configuration model."""

    database_path: Path = Field(default_factory=get_database_path)
    # Full SQLAlchemy URL; takes precedence over database_path
    database_url: str | None = None
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    automations: list[SeedAutomation] = Field(default_factory=list)

    def seeds(self) -> list[SeedAutomation]:
        """Seed automations with the scheduler timezone filled in."""
        return [
            seed.model_copy(update={"timezone": seed.timezone or self.scheduler.timezone})
            for seed in self.automations
        ]
