"""Tests for CLI commands."""

import pytest

from cadence.cli.app import app


@pytest.fixture
def invoke(cli_runner, config_file, restore_root_logger):
    """Invoke the app against the temp config file."""

    def run(*args: str):
        return cli_runner.invoke(
            app, [*args, "--config", str(config_file)], env={"COLUMNS": "200"}
        )

    return run


def create_heartbeat(invoke, *extra: str):
    return invoke(
        "automations",
        "create",
        "--name",
        "heartbeat",
        "--action",
        "log_message",
        "--kind",
        "interval",
        "--expr",
        "5m",
        "--payload",
        '{"message": "still alive"}',
        *extra,
    )


class TestAutomationsCommand:
    def test_list_empty(self, invoke):
        result = invoke("automations", "list")
        assert result.exit_code == 0
        assert "No automations found" in result.stdout

    def test_create_and_list(self, invoke):
        result = create_heartbeat(invoke)
        assert result.exit_code == 0, result.stdout
        assert "Created automation 1: heartbeat" in result.stdout

        result = invoke("automations", "list")
        assert result.exit_code == 0
        assert "heartbeat" in result.stdout
        assert "Total: 1 automation(s)" in result.stdout

    def test_create_invalid_schedule(self, invoke):
        result = invoke(
            "automations",
            "create",
            "--name",
            "broken",
            "--action",
            "log_message",
            "--kind",
            "cron",
            "--expr",
            "every morning",
        )
        assert result.exit_code == 1
        assert "invalid schedule" in result.stdout

    def test_create_invalid_payload_json(self, invoke):
        result = create_heartbeat(invoke, "--payload", "{nope")
        assert result.exit_code == 1
        assert "--payload must be valid JSON" in result.stdout

    def test_show(self, invoke):
        create_heartbeat(invoke)
        result = invoke("automations", "show", "1")
        assert result.exit_code == 0
        assert "heartbeat" in result.stdout
        assert "log_message" in result.stdout
        assert "No runs recorded" in result.stdout

    def test_show_missing(self, invoke):
        result = invoke("automations", "show", "42")
        assert result.exit_code == 1
        assert "automation not found: 42" in result.stdout

    def test_update(self, invoke):
        create_heartbeat(invoke)
        result = invoke("automations", "update", "1", "--expr", "10m", "--disable")
        assert result.exit_code == 0, result.stdout
        assert "Updated automation 1" in result.stdout

        result = invoke("automations", "show", "1")
        assert "'10m'" in result.stdout
        assert "Enabled:   no" in result.stdout

    def test_delete(self, invoke):
        create_heartbeat(invoke)
        result = invoke("automations", "delete", "1", "--force")
        assert result.exit_code == 0
        assert "Deleted automation 1" in result.stdout

        result = invoke("automations", "delete", "1", "--force")
        assert result.exit_code == 1

    def test_trigger_and_run_due(self, invoke):
        create_heartbeat(invoke)

        result = invoke("run-due")
        assert result.exit_code == 0
        assert "Nothing due" in result.stdout

        result = invoke("automations", "trigger", "1")
        assert result.exit_code == 0
        assert "scheduled to run now" in result.stdout

        result = invoke("run-due")
        assert result.exit_code == 0, result.stdout
        assert "Executed 1 automation(s)" in result.stdout

        result = invoke("automations", "runs", "--id", "1")
        assert result.exit_code == 0
        assert "success" in result.stdout
        assert "still alive" in result.stdout


class TestConfigErrors:
    def test_missing_config_file(self, cli_runner, tmp_path):
        result = cli_runner.invoke(
            app, ["automations", "list", "--config", str(tmp_path / "missing.toml")]
        )
        assert result.exit_code == 1
        assert "not found" in result.stdout

    def test_invalid_config_file(self, cli_runner, tmp_path):
        bad = tmp_path / "bad.toml"
        bad.write_text("[scheduler]\nclaim_limit = 0\n")
        result = cli_runner.invoke(app, ["automations", "list", "--config", str(bad)])
        assert result.exit_code == 1
        assert "Invalid configuration" in result.stdout


class TestDbCommand:
    def test_init_creates_database(self, invoke, tmp_path):
        result = invoke("db", "init")
        assert result.exit_code == 0
        assert "Database ready" in result.stdout
        assert (tmp_path / "cli.db").exists()


class TestApp:
    def test_no_args_shows_help(self, cli_runner):
        result = cli_runner.invoke(app, [])
        assert "automations" in result.output
        assert "run-due" in result.output
