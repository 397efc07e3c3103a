"""Tests for the command line interface."""

from pathlib import Path

import pytest
from typer.testing import CliRunner

from datasync import __version__
from datasync.cli import app

runner = CliRunner()


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run every command from an empty directory."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def customers_csv(workdir: Path) -> Path:
    path = workdir / "customers.csv"
    path.write_text(
        "entity_id,email,firstname\n"
        "1,alice@example.com,Alice\n"
        "2,bob@example.com,Bob\n",
        encoding="utf-8",
    )
    return path


def sync_args(csv_path: Path, *extra: str) -> list[str]:
    return ["sync", "customer", "legacy", "--file", str(csv_path), "--database", "target.db", *extra]


class TestSyncCommand:
    """Test the sync command."""

    def test_sync_csv(self, customers_csv: Path) -> None:
        """Test a quiet import from CSV."""
        result = runner.invoke(app, sync_args(customers_csv, "--quiet"))
        assert result.exit_code == 0, result.output
        assert "Synced 2 records" in result.output

        mapped = runner.invoke(app, ["resolve", "legacy", "customer", "2", "--database", "target.db"])
        assert mapped.exit_code == 0
        assert "Target ID" in mapped.output

    def test_rerun_with_skip(self, customers_csv: Path) -> None:
        """Test that a second run skips existing records."""
        runner.invoke(app, sync_args(customers_csv, "--quiet"))
        result = runner.invoke(app, sync_args(customers_csv, "--quiet", "--on-duplicate", "skip"))
        assert result.exit_code == 0, result.output
        assert "Skipped: 2" in result.output

    def test_verbose_prints_records(self, customers_csv: Path) -> None:
        result = runner.invoke(app, sync_args(customers_csv, "--verbose"))
        assert result.exit_code == 0, result.output
        assert "created customer #1" in result.output
        assert "Sync Summary" in result.output

    def test_dry_run(self, customers_csv: Path) -> None:
        """Test that dry runs leave the registry empty."""
        result = runner.invoke(app, sync_args(customers_csv, "--quiet", "--dry-run"))
        assert result.exit_code == 0, result.output
        assert "DRY RUN" in result.output
        assert "Validated 2 records" in result.output

        mapped = runner.invoke(app, ["resolve", "legacy", "customer", "1", "--database", "target.db"])
        assert mapped.exit_code == 1
        assert "is not mapped" in mapped.output

    def test_fail_on_error(self, workdir: Path) -> None:
        """Test the exit status when records fail."""
        path = workdir / "broken.csv"
        path.write_text("entity_id,email\n1,\n", encoding="utf-8")

        lenient = runner.invoke(app, sync_args(path, "--quiet"))
        assert lenient.exit_code == 0
        assert "Errors: 1" in lenient.output

        strict = runner.invoke(app, sync_args(path, "--quiet", "--fail-on-error"))
        assert strict.exit_code == 1

    def test_missing_source(self, workdir: Path) -> None:
        """Test that an undescribed source is rejected."""
        result = runner.invoke(app, ["sync", "customer", "legacy", "--database", "target.db"])
        assert result.exit_code == 1
        assert "file_path is required" in result.output

    def test_invalid_filter(self, customers_csv: Path) -> None:
        result = runner.invoke(app, sync_args(customers_csv, "--id-from", "5", "--id-to", "1"))
        assert result.exit_code == 1

    def test_unsupported_entity(self, customers_csv: Path) -> None:
        """Test that entity types without handler fail cleanly."""
        result = runner.invoke(
            app,
            ["sync", "gadget", "legacy", "--file", str(customers_csv), "--database", "target.db", "--quiet"],
        )
        assert result.exit_code == 1


class TestStatusCommands:
    """Test status, reset and resolve."""

    def test_status_empty(self, workdir: Path) -> None:
        result = runner.invoke(app, ["status", "legacy", "--database", "target.db"])
        assert result.exit_code == 0
        assert "Nothing synced from legacy yet." in result.output

    def test_status_after_sync(self, customers_csv: Path) -> None:
        runner.invoke(app, sync_args(customers_csv, "--quiet"))
        result = runner.invoke(app, ["status", "legacy", "--database", "target.db"])
        assert result.exit_code == 0
        assert "Sync Status: legacy" in result.output

    def test_reset(self, customers_csv: Path) -> None:
        runner.invoke(app, sync_args(customers_csv, "--quiet"))
        result = runner.invoke(app, ["reset", "legacy", "--entity", "customer", "--yes", "--database", "target.db"])
        assert result.exit_code == 0
        assert "Reset 1 checkpoint(s) for legacy:customer" in result.output

    def test_reset_declined(self, workdir: Path) -> None:
        result = runner.invoke(app, ["reset", "legacy", "--database", "target.db"], input="n\n")
        assert result.exit_code == 0
        assert "Reset 0" not in result.output


class TestMiscCommands:
    """Test adapters, config and version."""

    def test_adapters(self) -> None:
        result = runner.invoke(app, ["adapters"])
        assert result.exit_code == 0
        assert "csv" in result.output
        assert "REST API" in result.output

    def test_config_init(self, workdir: Path) -> None:
        result = runner.invoke(app, ["config", "--init", "--output", "datasync.toml"])
        assert result.exit_code == 0
        content = (workdir / "datasync.toml").read_text()
        assert "[sync]" in content
        assert 'on_duplicate = "error"' in content

    def test_config_show(self, workdir: Path) -> None:
        result = runner.invoke(app, ["config", "--show"])
        assert result.exit_code == 0
        assert "On Duplicate" in result.output

    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output
