"""Tests for logging configuration and utilities."""

import json
import logging
import os
import time

import pytest

from cadence.logging import (
    ComponentFormatter,
    JSONLHandler,
    component_for,
    configure_logging,
    prune_old_logs,
    record_extras,
)


def make_record(name: str, msg: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord(name, logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestPruneOldLogs:
    def test_deletes_old_files(self, tmp_path):
        old_log = tmp_path / "2024-01-01.jsonl"
        old_log.write_text('{"test": "old"}\n')
        old_time = time.time() - (10 * 24 * 60 * 60)
        os.utime(old_log, (old_time, old_time))
        recent_log = tmp_path / "2024-01-10.jsonl"
        recent_log.write_text('{"test": "recent"}\n')

        deleted = prune_old_logs(tmp_path, retention_days=7)

        assert deleted == 1
        assert not old_log.exists()
        assert recent_log.exists()

    def test_ignores_other_files(self, tmp_path):
        old_txt = tmp_path / "old.txt"
        old_txt.write_text("old text")
        old_time = time.time() - (10 * 24 * 60 * 60)
        os.utime(old_txt, (old_time, old_time))
        (tmp_path / "subdir.jsonl").mkdir()

        assert prune_old_logs(tmp_path, retention_days=7) == 0
        assert old_txt.exists()

    def test_handles_nonexistent_directory(self, tmp_path):
        assert prune_old_logs(tmp_path / "missing") == 0


class TestComponents:
    @pytest.mark.parametrize(
        ("name", "component"),
        [
            ("cadence.scheduling.scheduler", "scheduling"),
            ("cadence.cli.commands.serve", "cli"),
            ("cadence", "cadence"),
            ("httpx", "httpx"),
            ("sqlalchemy.engine.Engine", "sqlalchemy"),
        ],
    )
    def test_component_for(self, name, component):
        assert component_for(name) == component

    def test_record_extras_only_returns_extra_fields(self):
        record = make_record("cadence.x", "event", **{"automation.id": 4})
        assert record_extras(record) == {"automation.id": 4}

    def test_formatter_appends_extras(self):
        formatter = ComponentFormatter("%(component)s | %(message)s")
        record = make_record(
            "cadence.scheduling.scheduler",
            "automation_completed",
            **{"run.id": 3, "error.message": None},
        )

        assert formatter.format(record) == "scheduling | automation_completed run.id=3"


class TestJSONLHandler:
    def test_writes_structured_entries(self, tmp_path):
        handler = JSONLHandler(tmp_path)
        try:
            handler.emit(
                make_record(
                    "cadence.scheduling.store",
                    "automation_created",
                    **{"automation.id": 1, "automation.name": "digest"},
                )
            )
        finally:
            handler.close()

        [log_file] = list(tmp_path.glob("*.jsonl"))
        entry = json.loads(log_file.read_text().strip())
        assert entry["message"] == "automation_created"
        assert entry["component"] == "scheduling"
        assert entry["level"] == "INFO"
        assert entry["extra"] == {"automation.id": 1, "automation.name": "digest"}


class TestConfigureLogging:
    def test_sets_level_and_quiets_noisy_loggers(self, restore_root_logger):
        configure_logging(level="debug")

        assert restore_root_logger.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_env_level(self, restore_root_logger, monkeypatch):
        monkeypatch.setenv("CADENCE_LOG_LEVEL", "ERROR")
        configure_logging()
        assert restore_root_logger.level == logging.ERROR

    def test_unknown_level_falls_back_to_info(self, restore_root_logger):
        configure_logging(level="chatty")
        assert restore_root_logger.level == logging.INFO

    def test_log_to_file(self, restore_root_logger, tmp_path):
        configure_logging(level="INFO", log_to_file=True, logs_dir=tmp_path)
        logging.getLogger("cadence.test").info("hello", extra={"run.id": 9})
        for handler in restore_root_logger.handlers:
            handler.flush()

        [log_file] = list(tmp_path.glob("*.jsonl"))
        entry = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert entry["message"] == "hello"
        assert entry["extra"] == {"run.id": 9}
