"""Shared test fixtures and factories."""

import logging
from collections.abc import AsyncGenerator, Iterator
from datetime import UTC, datetime
from pathlib import Path

import pytest

from cadence.config.paths import ENV_VAR, get_cadence_home
from cadence.db.engine import Database
from cadence.scheduling import (
    ActionContext,
    ActionRegistry,
    AutomationDefinition,
    AutomationService,
    AutomationStore,
)

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

# =============================================================================
# Environment Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def cadence_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point CADENCE_HOME at a temp dir so tests never touch ~/.cadence."""
    home = tmp_path / "cadence-home"
    monkeypatch.setenv(ENV_VAR, str(home))
    monkeypatch.delenv("CADENCE_DATABASE_URL", raising=False)
    monkeypatch.delenv("CADENCE_LOG_LEVEL", raising=False)
    monkeypatch.chdir(tmp_path)
    get_cadence_home.cache_clear()
    yield home
    get_cadence_home.cache_clear()


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def database_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
async def database(database_path: Path) -> AsyncGenerator[Database, None]:
    """Create a temporary test database."""
    db = Database(database_path=database_path)
    await db.connect()
    await db.create_schema()

    yield db

    await db.disconnect()


@pytest.fixture
def store(database: Database) -> AutomationStore:
    return AutomationStore(database)


@pytest.fixture
def service(store: AutomationStore) -> AutomationService:
    return AutomationService(store)


# =============================================================================
# Action Fixtures
# =============================================================================


class RecordingAction:
    """Action handler that records every call."""

    def __init__(self, output: str | None = "ok", error: Exception | None = None):
        self.output = output
        self.error = error
        self.calls: list[tuple[ActionContext, AutomationDefinition]] = []

    async def __call__(
        self, ctx: ActionContext, definition: AutomationDefinition
    ) -> str | None:
        self.calls.append((ctx, definition))
        if self.error is not None:
            raise self.error
        return self.output


@pytest.fixture
def recording_action() -> RecordingAction:
    return RecordingAction()


@pytest.fixture
def registry(recording_action: RecordingAction) -> ActionRegistry:
    """Registry with a single "record" action."""
    registry = ActionRegistry()
    registry.register("record", recording_action)
    return registry


async def create_definition(
    store: AutomationStore,
    name: str = "test",
    action_type: str = "record",
    schedule_kind: str = "interval",
    schedule_expr: str = "5m",
    next_run_at: datetime | None = T0,
    enabled: bool = True,
    timezone: str = "UTC",
    payload: dict | None = None,
) -> AutomationDefinition:
    """Insert a definition directly, bypassing service validation."""
    definition = AutomationDefinition(
        name=name,
        action_type=action_type,
        schedule_kind=schedule_kind,
        schedule_expr=schedule_expr,
        timezone=timezone,
        payload=payload or {},
        enabled=enabled,
        next_run_at=next_run_at,
    )
    await store.create_automation(definition)
    return definition


# =============================================================================
# CLI Fixtures
# =============================================================================


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner with colors disabled."""
    from typer.testing import CliRunner

    return CliRunner(env={"NO_COLOR": "1"})


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Config pointing at a database inside the temp dir."""
    config_path = tmp_path / "config.toml"
    database_path = tmp_path / "cli.db"
    config_path.write_text(f"""
database_path = "{database_path}"

[scheduler]
poll_interval = 1
claim_limit = 5

[logging]
level = "WARNING"
use_rich = false
""")
    return config_path


@pytest.fixture
def restore_root_logger() -> Iterator[logging.Logger]:
    """Undo configure_logging() changes to the root logger."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
