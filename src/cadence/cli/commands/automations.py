"""Automation management commands."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer

from cadence.cli.console import (
    confirm_or_cancel,
    console,
    create_table,
    dim,
    error,
    format_countdown,
    success,
    warning,
)
from cadence.cli.runtime import (
    ConfigOption,
    Runtime,
    load_cli_config,
    open_runtime,
)
from cadence.scheduling import (
    AutomationDefinition,
    AutomationNotFoundError,
    AutomationRun,
    AutomationValidationError,
    RunStatus,
)

_T = TypeVar("_T")


def run_with_runtime(
    config_path: Path | None, fn: Callable[[Runtime], Awaitable[_T]]
) -> _T:
    """Run an async operation against a connected runtime.

    Validation and not-found errors become a red message and exit code 1.
    """
    config = load_cli_config(config_path)

    async def runner() -> _T:
        async with open_runtime(config) as runtime:
            return await fn(runtime)

    try:
        return asyncio.run(runner())
    except (AutomationValidationError, AutomationNotFoundError) as e:
        error(str(e))
        raise typer.Exit(1) from None


def _format_time(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S UTC") if value else "-"


def _status_markup(status: RunStatus) -> str:
    colors = {
        RunStatus.SUCCESS: "green",
        RunStatus.FAILED: "red",
        RunStatus.RUNNING: "yellow",
    }
    return f"[{colors[status]}]{status.value}[/{colors[status]}]"


def _print_definition(definition: AutomationDefinition) -> None:
    console.print(f"[bold]{definition.name}[/bold] [dim](id {definition.id})[/dim]")
    console.print(f"  Action:    {definition.action_type}")
    console.print(
        f"  Schedule:  {definition.schedule_kind} {definition.schedule_expr!r} "
        f"({definition.timezone})"
    )
    console.print(f"  Enabled:   {'yes' if definition.enabled else 'no'}")
    console.print(
        f"  Next run:  {_format_time(definition.next_run_at)} "
        f"[dim]{format_countdown(definition.next_run_at)}[/dim]"
    )
    console.print(f"  Last run:  {_format_time(definition.last_run_at)}")
    console.print(f"  Payload:   {json.dumps(definition.payload)}")


def _print_runs(runs: list[AutomationRun]) -> None:
    if not runs:
        warning("No runs recorded")
        return
    table = create_table(
        "Runs",
        [
            ("Run", "dim"),
            ("Automation", ""),
            ("Scheduled", ""),
            ("Status", ""),
            ("Duration", ""),
            ("Error / Output", {"overflow": "fold"}),
        ],
    )
    for run in runs:
        duration = run.duration_seconds
        detail = run.error or run.output or ""
        table.add_row(
            str(run.id),
            str(run.automation_id),
            _format_time(run.scheduled_at),
            _status_markup(run.status),
            f"{duration:.2f}s" if duration is not None else "-",
            detail[:120],
        )
    console.print(table)


def _parse_payload_option(payload: str | None) -> Any:
    if payload is None:
        return None
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        error(f"--payload must be valid JSON: {e}")
        raise typer.Exit(1) from None


def register(app: typer.Typer) -> None:
    """Register the automations command group."""
    automations_app = typer.Typer(help="Manage automations")

    @automations_app.command("list")
    def automations_list(config: ConfigOption = None) -> None:
        """List all automations."""

        async def do_list(runtime: Runtime) -> list[AutomationDefinition]:
            return await runtime.service.list_all()

        definitions = run_with_runtime(config, do_list)
        if not definitions:
            warning("No automations found")
            return

        table = create_table(
            "Automations",
            [
                ("ID", "dim"),
                ("Name", "bold"),
                ("Action", ""),
                ("Schedule", ""),
                ("Enabled", ""),
                ("Next Run", ""),
            ],
        )
        for definition in definitions:
            table.add_row(
                str(definition.id),
                definition.name,
                definition.action_type,
                f"{definition.schedule_kind} {definition.schedule_expr}",
                "yes" if definition.enabled else "[dim]no[/dim]",
                format_countdown(definition.next_run_at),
            )
        console.print(table)
        dim(f"Total: {len(definitions)} automation(s)")

    @automations_app.command("show")
    def automations_show(
        automation_id: Annotated[int, typer.Argument(help="Automation ID")],
        config: ConfigOption = None,
    ) -> None:
        """Show one automation and its recent runs."""

        async def do_show(
            runtime: Runtime,
        ) -> tuple[AutomationDefinition, list[AutomationRun]]:
            definition = await runtime.service.get(automation_id)
            runs = await runtime.service.list_runs(automation_id, limit=5)
            return definition, runs

        definition, runs = run_with_runtime(config, do_show)
        _print_definition(definition)
        console.print()
        _print_runs(runs)

    @automations_app.command("create")
    def automations_create(
        name: Annotated[str, typer.Option("--name", "-n", help="Automation name")],
        action: Annotated[
            str, typer.Option("--action", "-a", help="Registered action type")
        ],
        kind: Annotated[
            str, typer.Option("--kind", "-k", help="interval, oneshot or cron")
        ],
        expr: Annotated[
            str,
            typer.Option(
                "--expr",
                "-e",
                help='Schedule expression ("5m", "2026-01-01T09:00:00Z", "0 8 * * *")',
            ),
        ],
        timezone: Annotated[
            str | None,
            typer.Option("--timezone", "-t", help="IANA timezone for cron"),
        ] = None,
        payload: Annotated[
            str | None,
            typer.Option("--payload", "-p", help="JSON object passed to the action"),
        ] = None,
        disabled: Annotated[
            bool, typer.Option("--disabled", help="Create without enabling")
        ] = False,
        config: ConfigOption = None,
    ) -> None:
        """Create an automation."""
        payload_value = _parse_payload_option(payload)

        async def do_create(runtime: Runtime) -> AutomationDefinition:
            return await runtime.service.create(
                name=name,
                action_type=action,
                schedule_kind=kind,
                schedule_expr=expr,
                timezone=timezone or runtime.config.scheduler.timezone,
                payload=payload_value,
                enabled=not disabled,
            )

        definition = run_with_runtime(config, do_create)
        success(f"Created automation {definition.id}: {definition.name}")
        dim(f"Next run: {_format_time(definition.next_run_at)}")

    @automations_app.command("update")
    def automations_update(
        automation_id: Annotated[int, typer.Argument(help="Automation ID")],
        name: Annotated[str | None, typer.Option("--name", "-n")] = None,
        action: Annotated[str | None, typer.Option("--action", "-a")] = None,
        kind: Annotated[str | None, typer.Option("--kind", "-k")] = None,
        expr: Annotated[str | None, typer.Option("--expr", "-e")] = None,
        timezone: Annotated[str | None, typer.Option("--timezone", "-t")] = None,
        payload: Annotated[str | None, typer.Option("--payload", "-p")] = None,
        enabled: Annotated[
            bool | None,
            typer.Option("--enable/--disable", help="Enable or disable"),
        ] = None,
        config: ConfigOption = None,
    ) -> None:
        """Update an automation and recompute its next run."""
        payload_value = _parse_payload_option(payload)

        async def do_update(runtime: Runtime) -> AutomationDefinition:
            return await runtime.service.update(
                automation_id,
                name=name,
                action_type=action,
                schedule_kind=kind,
                schedule_expr=expr,
                timezone=timezone,
                payload=payload_value,
                enabled=enabled,
            )

        definition = run_with_runtime(config, do_update)
        success(f"Updated automation {definition.id}")
        dim(f"Next run: {_format_time(definition.next_run_at)}")

    @automations_app.command("delete")
    def automations_delete(
        automation_id: Annotated[int, typer.Argument(help="Automation ID")],
        force: Annotated[
            bool,
            typer.Option("--force", "-f", help="Delete without confirmation"),
        ] = False,
        config: ConfigOption = None,
    ) -> None:
        """Delete an automation and its run history."""
        if not confirm_or_cancel(f"Delete automation {automation_id}?", force):
            return

        async def do_delete(runtime: Runtime) -> None:
            await runtime.service.delete(automation_id)

        run_with_runtime(config, do_delete)
        success(f"Deleted automation {automation_id}")

    @automations_app.command("trigger")
    def automations_trigger(
        automation_id: Annotated[int, typer.Argument(help="Automation ID")],
        config: ConfigOption = None,
    ) -> None:
        """Run an automation on the next poll, regardless of its schedule."""

        async def do_trigger(runtime: Runtime) -> None:
            await runtime.service.trigger_now(automation_id)

        run_with_runtime(config, do_trigger)
        success(f"Automation {automation_id} scheduled to run now")

    @automations_app.command("runs")
    def automations_runs(
        automation_id: Annotated[
            int | None, typer.Option("--id", "-i", help="Only this automation")
        ] = None,
        limit: Annotated[
            int, typer.Option("--limit", "-l", help="Number of runs to show")
        ] = 20,
        config: ConfigOption = None,
    ) -> None:
        """Show recent runs, newest first."""

        async def do_runs(runtime: Runtime) -> list[AutomationRun]:
            return await runtime.service.list_runs(automation_id, limit=limit)

        _print_runs(run_with_runtime(config, do_runs))

    app.add_typer(automations_app, name="automations")
