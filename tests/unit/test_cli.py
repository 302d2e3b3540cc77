"""Tests for the tsprune command-line interface."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import pytest
from typer.testing import CliRunner

from tsprune.backends.database import DatabaseSampleStore
from tsprune.base import SummaryRow
from tsprune.cli import app
from tsprune.config import DATABASE_URL_ENV
from tsprune.durations import HOUR, MONTH, to_epoch


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def runner() -> CliRunner:
    """Create CLI runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def restore_logging(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """The CLI reconfigures the root logger; put it back afterwards."""
    monkeypatch.delenv(DATABASE_URL_ENV, raising=False)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def database(tmp_path: Path) -> str:
    """SQLite database with one table holding a day of 5 minute samples."""
    url = f"sqlite:///{tmp_path / 'rtg.db'}"
    start = to_epoch(datetime.now(timezone.utc) - MONTH - HOUR * 4)
    with DatabaseSampleStore(url) as store:
        store.create_sample_table("ifInOctets_252")
        store.create_sample_table("routers")
        for i in range(288):
            store.insert_summary(
                "ifInOctets_252",
                1,
                SummaryRow(start + i * 300, (1000 + i) * 300, 1000 + i),
            )
    return url


@pytest.fixture
def config_file(tmp_path: Path, database: str) -> Path:
    path = tmp_path / "tsprune.yaml"
    path.write_text(
        f"""\
database: "{database}"
seed: 1
rules:
  - {{table: all, age: 14d, reduce: 1h}}
  - {{table: all, age: 1 month, reduce: 2h}}
  - {{table: "/^adsl/", age: 2 years, drop: true}}
  - {{table: adslLineRate_1, age: 2 years, reduce: 1d}}
"""
    )
    return path


# =============================================================================
# rules
# =============================================================================


class TestRulesCommand:
    """Tests for `tsprune rules`."""

    def test_lists_rules_oldest_first(self, runner, config_file) -> None:
        result = runner.invoke(app, ["rules", str(config_file), "ifInOctets_252"])

        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert lines[0] == "Rules for ifInOctets_252 (oldest first):"
        assert lines[1:] == [
            "  - all: older than 1 month, reduce to 2 hours",
            "  - all: older than 2 weeks, reduce to 1 hour",
        ]

    def test_reports_conflicts(self, runner, config_file) -> None:
        result = runner.invoke(app, ["rules", str(config_file), "adslLineRate_1"])

        assert result.exit_code == 0
        assert "adslLineRate_1: older than 2 years, reduce to 1 day" in result.output
        assert "Warning:" in result.output

    def test_no_rules(self, runner, tmp_path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("rules: []\n")

        result = runner.invoke(app, ["rules", str(path), "foo"])

        assert result.exit_code == 0
        assert "No rules apply to foo" in result.output

    def test_missing_config(self, runner, tmp_path) -> None:
        result = runner.invoke(app, ["rules", str(tmp_path / "nope.yaml"), "foo"])

        assert result.exit_code == 1
        assert "not found" in result.output


# =============================================================================
# run
# =============================================================================


class TestRunCommand:
    """Tests for `tsprune run`."""

    def test_dry_run(self, runner, config_file, database) -> None:
        result = runner.invoke(app, ["run", str(config_file), "--dry-run"])

        assert result.exit_code == 0
        assert "[dry run] Processed 1 tables, skipped 0, 0 left for next run" in result.output
        assert "Operations planned:" in result.output
        with DatabaseSampleStore(database) as store:
            assert len(store.read_samples("ifInOctets_252", 1, 0, 2**31)) == 288
            assert store.get_prune_record("ifInOctets_252") is None

    def test_run_prunes_then_skips(self, runner, config_file, database) -> None:
        first = runner.invoke(app, ["run", str(config_file), "-v"])
        second = runner.invoke(app, ["run", str(config_file)])

        assert first.exit_code == 0
        assert "Processed 1 tables, skipped 0" in first.output
        assert second.exit_code == 0
        assert "Processed 0 tables, skipped 1" in second.output
        with DatabaseSampleStore(database) as store:
            assert len(store.read_samples("ifInOctets_252", 1, 0, 2**31)) < 288
            assert store.get_prune_record("ifInOctets_252") is not None

    def test_database_option_overrides_config(self, runner, config_file, tmp_path) -> None:
        other = f"sqlite:///{tmp_path / 'other.db'}"

        result = runner.invoke(app, ["run", str(config_file), "--database", other])

        assert result.exit_code == 0
        assert "Processed 0 tables" in result.output

    def test_no_database(self, runner, tmp_path) -> None:
        path = tmp_path / "nodb.yaml"
        path.write_text("rules: [{age: 1d, drop: true}]\n")

        result = runner.invoke(app, ["run", str(path)])

        assert result.exit_code == 1
        assert "No database configured" in result.output

    def test_bad_value_in_config(self, runner, tmp_path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("database: memory://\nworkers: many\n")

        result = runner.invoke(app, ["run", str(path)])

        assert result.exit_code == 1
        assert "workers: expected an integer" in result.output

    def test_bad_run_limit(self, runner, config_file) -> None:
        result = runner.invoke(app, ["run", str(config_file), "--run-limit", "soon"])

        assert result.exit_code == 1
        assert "Invalid duration" in result.output

    def test_unreachable_database(self, runner, config_file, tmp_path) -> None:
        url = f"sqlite:///{tmp_path / 'missing' / 'rtg.db'}"

        result = runner.invoke(app, ["run", str(config_file), "-d", url])

        assert result.exit_code == 1
        assert "Failed to connect" in result.output


# =============================================================================
# status
# =============================================================================


class TestStatusCommand:
    """Tests for `tsprune status`."""

    def test_before_and_after_run(self, runner, config_file) -> None:
        before = runner.invoke(app, ["status", str(config_file)])
        runner.invoke(app, ["run", str(config_file)])
        after = runner.invoke(app, ["status", str(config_file)])

        assert before.exit_code == 0
        assert "Reaggregate interval: 1 month" in before.output
        assert "ifInOctets_252: last pruned never (needs pruning)" in before.output
        assert "routers" not in before.output
        assert "(up to date)" in after.output
