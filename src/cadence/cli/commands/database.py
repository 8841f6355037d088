"""Database management commands.

Provides commands for:
- migrate: apply schema migrations with alembic
- status: show the current revision and history
- init: create tables directly from the models
"""

from __future__ import annotations

import asyncio
import os
import subprocess
import sys
from pathlib import Path
from typing import Annotated

import typer

from cadence.cli.console import console, error, success
from cadence.cli.runtime import ConfigOption, create_database, load_cli_config


def _alembic(args: list[str], config_path: Path | None) -> int:
    env = dict(os.environ)
    if config_path is not None:
        env["CADENCE_CONFIG"] = str(config_path.expanduser())
    result = subprocess.run(
        [sys.executable, "-m", "alembic", *args],
        capture_output=False,
        env=env,
    )
    return result.returncode


def register(app: typer.Typer) -> None:
    """Register the db command group."""
    db_app = typer.Typer(help="Database management commands")

    @db_app.command("migrate")
    def db_migrate(
        revision: Annotated[
            str,
            typer.Option(
                "--revision",
                "-r",
                help="Target revision",
            ),
        ] = "head",
        config: ConfigOption = None,
    ) -> None:
        """Run database migrations."""
        console.print(f"[bold]Running migrations to {revision}...[/bold]")
        if _alembic(["upgrade", revision], config) == 0:
            success("Migrations completed successfully")
        else:
            error("Migration failed")
            raise typer.Exit(1)

    @db_app.command("status")
    def db_status(config: ConfigOption = None) -> None:
        """Show migration status."""
        console.print("[bold]Migration status:[/bold]")
        _alembic(["current"], config)
        console.print("\n[bold]Migration history:[/bold]")
        _alembic(["history", "--indicate-current"], config)

    @db_app.command("init")
    def db_init(config: ConfigOption = None) -> None:
        """Create tables from the models without alembic."""
        cadence_config = load_cli_config(config)
        database = create_database(cadence_config)

        async def do_init() -> None:
            await database.connect()
            try:
                await database.create_schema()
            finally:
                await database.disconnect()

        asyncio.run(do_init())
        success(f"Database ready at {database.url}")

    app.add_typer(db_app, name="db")
