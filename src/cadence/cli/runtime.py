"""Shared runtime bootstrap helpers for CLI entrypoints."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

import typer

from cadence.cli.console import error
from cadence.config import CadenceConfig, ConfigError, load_config
from cadence.db import Database
from cadence.scheduling import (
    ActionRegistry,
    AutomationScheduler,
    AutomationService,
    AutomationStore,
)
from cadence.scheduling.actions import register_builtin_actions


@dataclass(slots=True)
class Runtime:
    """Composed runtime dependencies for CLI command handlers."""

    config: CadenceConfig
    database: Database
    store: AutomationStore
    service: AutomationService
    registry: ActionRegistry

    def create_scheduler(self) -> AutomationScheduler:
        scheduler_config = self.config.scheduler
        return AutomationScheduler(
            self.store,
            self.registry,
            poll_interval=scheduler_config.poll_interval,
            claim_limit=scheduler_config.claim_limit,
            handler_timeout=scheduler_config.handler_timeout,
        )


def create_database(config: CadenceConfig) -> Database:
    if config.database_url:
        return Database(database_url=config.database_url)
    return Database(database_path=config.database_path)


@asynccontextmanager
async def open_runtime(
    config: CadenceConfig, *, create_schema: bool = True
) -> AsyncIterator[Runtime]:
    """Connect the database and wire store, service and registry."""
    database = create_database(config)
    await database.connect()
    try:
        if create_schema:
            await database.create_schema()
        store = AutomationStore(database)
        registry = ActionRegistry()
        register_builtin_actions(registry)
        yield Runtime(
            config=config,
            database=database,
            store=store,
            service=AutomationService(store),
            registry=registry,
        )
    finally:
        await database.disconnect()


ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help="Path to configuration file",
    ),
]


def load_cli_config(config_path: Path | None) -> CadenceConfig:
    """Load config or exit with a readable error."""
    try:
        return load_config(config_path)
    except (FileNotFoundError, ConfigError) as e:
        error(str(e))
        raise typer.Exit(1) from None
