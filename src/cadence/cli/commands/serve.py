"""Commands that run the scheduler."""

import asyncio
import logging
import signal
from typing import Annotated

import typer

from cadence.cli.console import console, dim, success
from cadence.cli.runtime import ConfigOption, load_cli_config, open_runtime
from cadence.config import CadenceConfig
from cadence.config.paths import get_logs_path
from cadence.logging import configure_logging

logger = logging.getLogger(__name__)


def _configure_logging(config: CadenceConfig) -> None:
    configure_logging(
        level=config.logging.level,
        use_rich=config.logging.use_rich,
        log_to_file=config.logging.log_to_file,
        logs_dir=get_logs_path(),
        retention_days=config.logging.retention_days,
    )


def register(app: typer.Typer) -> None:
    """Register the serve and run-due commands."""

    @app.command()
    def serve(config: ConfigOption = None) -> None:
        """Run the scheduler until interrupted."""
        cadence_config = load_cli_config(config)
        _configure_logging(cadence_config)
        try:
            asyncio.run(_run_server(cadence_config))
        except KeyboardInterrupt:
            # Use print here since logging may be torn down already
            print("\nScheduler stopped")

    @app.command("run-due")
    def run_due(
        limit: Annotated[
            int | None,
            typer.Option(
                "--limit",
                "-l",
                help="Maximum automations to claim (defaults to scheduler.claim_limit)",
            ),
        ] = None,
        config: ConfigOption = None,
    ) -> None:
        """Run a single poll cycle and exit."""
        cadence_config = load_cli_config(config)
        _configure_logging(cadence_config)
        if limit is not None:
            cadence_config.scheduler.claim_limit = max(limit, 1)

        executed = asyncio.run(_run_due(cadence_config))
        if executed:
            success(f"Executed {executed} automation(s)")
        else:
            dim("Nothing due")


async def _run_due(config: CadenceConfig) -> int:
    async with open_runtime(config) as runtime:
        await runtime.service.ensure_seeded(config.seeds())
        return await runtime.create_scheduler().run_once()


async def _run_server(config: CadenceConfig) -> None:
    async with open_runtime(config) as runtime:
        seeded = await runtime.service.ensure_seeded(config.seeds())
        if seeded:
            logger.info(
                "automations_seeded",
                extra={"automation.names": [d.name for d in seeded]},
            )

        scheduler = runtime.create_scheduler()
        shutdown_event = asyncio.Event()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, shutdown_event.set)

        await scheduler.start()
        console.print(
            f"[bold green]Scheduler running[/bold green] "
            f"[dim](poll every {config.scheduler.poll_interval:g}s, "
            f"actions: {', '.join(runtime.registry.names)})[/dim]"
        )
        try:
            await shutdown_event.wait()
        finally:
            logger.info("Shutting down scheduler")
            await scheduler.stop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(sig)
