"""Main CLI application."""

import typer

from cadence.cli.commands import automations, database, serve

app = typer.Typer(
    name="cadence",
    help="Cadence - persistent automation scheduler",
    no_args_is_help=True,
)

serve.register(app)
automations.register(app)
database.register(app)


if __name__ == "__main__":
    app()
