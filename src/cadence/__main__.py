from cadence.cli.app import app

app()
