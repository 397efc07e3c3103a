"""Tests for terminal display helpers and logging setup."""

import json
import logging
from pathlib import Path

import pytest

from datasync.utils.display import ProgressDisplay, format_bytes, format_duration
from datasync.config import LoggingConfig
from datasync.exceptions import ValidationFailed
from datasync.utils.logger import (
    ContextFormatter,
    JsonFormatter,
    SyncLogger,
    error_context,
    get_logger,
    setup_logging,
)


class TestFormatting:
    """Test formatting helpers."""

    @pytest.mark.parametrize(
        "seconds,expected",
        [(2.5, "2.5s"), (192, "3m 12s"), (3840, "1h 04m")],
    )
    def test_format_duration(self, seconds: float, expected: str) -> None:
        assert format_duration(seconds) == expected

    def test_format_bytes(self) -> None:
        assert format_bytes(512) == "512.0 B"
        assert format_bytes(2048) == "2.0 KB"
        assert format_bytes(5 * 1024 ** 3) == "5.0 GB"


class TestProgressDisplay:
    """Test ProgressDisplay message accounting."""

    def test_counts_records_and_errors(self) -> None:
        """Test that throughput messages do not count as records."""
        display = ProgressDisplay()
        display.on_message("created customer #1 -> #10")
        display.on_message("ERROR: Missing required fields: email")
        display.on_message("Progress: 2 records | 10.0 rec/s (current: 10.0 rec/s)")

        assert display._stats["processed"] == 2
        assert display._stats["errors"] == 1
        assert display._stats["last_message"].startswith("Progress:")

    def test_stop_without_start(self) -> None:
        with ProgressDisplay() as display:
            display.on_message("skipped")
        display.stop()


class TestLogging:
    """Test setup_logging and the JSON formatter."""

    def test_json_formatter_includes_context(self) -> None:
        record = logging.LogRecord("datasync", logging.WARNING, __file__, 1, "Sync failed", None, None)
        record.context = {"entity_type": "order", "source_system": "legacy"}

        data = json.loads(JsonFormatter().format(record))
        assert data["message"] == "Sync failed"
        assert data["level"] == "WARNING"
        assert data["entity_type"] == "order"

    def test_setup_logging_file(self, tmp_path: Path) -> None:
        """Test that a log file receives package log records."""
        log_file = tmp_path / "logs" / "datasync.log"
        setup_logging(LoggingConfig(level="DEBUG", file=log_file, format="simple"))

        get_logger("datasync.core.engine").info("Starting sync for customer from legacy")
        for handler in logging.getLogger("datasync").handlers:
            handler.flush()

        assert "Starting sync for customer from legacy" in log_file.read_text()
        assert logging.getLogger("datasync").level == logging.DEBUG

        setup_logging(level="WARNING")
        assert len(logging.getLogger("datasync").handlers) == 1

    def test_level_override(self) -> None:
        """Test that an explicit level wins over the configured one."""
        setup_logging(LoggingConfig(level="ERROR", format="json"), level="DEBUG")
        assert logging.getLogger("datasync").level == logging.DEBUG
        setup_logging()
        assert logging.getLogger("datasync").level == logging.INFO

    def test_json_file_carries_run_context(self, tmp_path: Path) -> None:
        """Test that SyncLogger fields reach a JSON log file."""
        log_file = tmp_path / "datasync.jsonl"
        setup_logging(LoggingConfig(file=log_file, format="json"))

        log = SyncLogger(get_logger("datasync.core.engine"), "legacy", "order")
        log.failure(
            "Failed to import order #12",
            ValidationFailed("Validation failed", entity_type="order", source_system="legacy"),
            source_id=12,
        )
        for handler in logging.getLogger("datasync").handlers:
            handler.flush()

        data = json.loads(log_file.read_text().splitlines()[-1])
        assert data["message"] == "Failed to import order #12"
        assert data["code"] == "validation_failed"
        assert data["source_id"] == 12
        assert data["source_system"] == "legacy"
        setup_logging(level="WARNING")


class TestSyncContext:
    """Test the run context attached to log records."""

    def test_sync_logger_context(self) -> None:
        log = SyncLogger(get_logger("datasync"), "legacy", "customer")
        msg, kwargs = log.process("hello", {"context": {"source_id": 4}})

        assert msg == "hello"
        assert kwargs["extra"]["context"] == {
            "source_system": "legacy",
            "entity_type": "customer",
            "source_id": 4,
        }

    def test_error_context(self) -> None:
        """Test structured fields for DataSync and foreign exceptions."""
        details = error_context(ValidationFailed("bad", entity_type="order", source_id=3))
        assert details == {"code": "validation_failed", "entity_type": "order", "source_id": 3}
        assert error_context(KeyError("x")) == {"code": "KeyError"}

    def test_context_formatter_tag(self) -> None:
        record = logging.LogRecord("datasync", logging.ERROR, __file__, 1, "Failed", None, None)
        record.context = {"source_system": "legacy", "entity_type": "order", "source_id": 12, "code": "duplicate_entity"}

        assert ContextFormatter("%(message)s").format(record) == "Failed [legacy/order #12 duplicate_entity]"

        plain = logging.LogRecord("datasync", logging.INFO, __file__, 1, "Done", None, None)
        assert ContextFormatter("%(message)s").format(plain) == "Done"

    def test_json_formatter_keeps_base_fields(self) -> None:
        """Test that context keys never replace the log message."""
        record = logging.LogRecord("datasync", logging.ERROR, __file__, 1, "Sync failed", None, None)
        record.context = {"message": "other", "code": "connection_failed"}

        data = json.loads(JsonFormatter().format(record))
        assert data["message"] == "Sync failed"
        assert data["code"] == "connection_failed"
