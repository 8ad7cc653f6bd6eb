"""Tests for the simbox-sim command line."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from simbox_simulator.cli.main import app
from simbox_simulator.persistence.connection import DatabaseManager
from simbox_simulator.persistence.store import DETECTION_TOGGLE


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI runner for testing."""
    return CliRunner()


@pytest.fixture
def initialized_db(tmp_path: Path) -> str:
    db_path = tmp_path / "cli.db"
    with DatabaseManager(db_path) as manager:
        manager.setup()
    return str(db_path)


class TestRunCommand:
    def test_wrong_argument_count_exits_non_zero(self, runner):
        result = runner.invoke(app, ["run", ":memory:", "100", "5"])

        assert result.exit_code != 0

    def test_extra_argument_exits_non_zero(self, runner):
        result = runner.invoke(app, ["run", ":memory:", "100", "5", "0", "10", "extra"])

        assert result.exit_code != 0

    def test_invalid_arguments_exit_with_code_1(self, runner):
        result = runner.invoke(app, ["run", ":memory:", "1", "5", "0", "10", "--quiet"])

        assert result.exit_code == 1

    def test_unopenable_store_exits_with_code_1(self, runner, tmp_path):
        bad = str(tmp_path / "missing_dir" / "x.db")

        result = runner.invoke(app, ["run", bad, "100", "5", "0", "10", "--quiet"])

        assert result.exit_code == 1

    def test_invalid_settings_file(self, runner, tmp_path):
        settings = tmp_path / "bad.yaml"
        settings.write_text("mobility_mode: teleport\n")

        result = runner.invoke(
            app, ["run", ":memory:", "100", "5", "0", "10", "--config", str(settings), "--quiet"]
        )

        assert result.exit_code == 1

    def test_zero_duration_run_prints_summary(self, runner, tmp_path):
        db_path = tmp_path / "run.db"

        result = runner.invoke(
            app, ["run", str(db_path), "100", "5", "0", "10", "--seed", "7", "--quiet"]
        )

        assert result.exit_code == 0, result.output
        summary = json.loads(result.stdout)
        assert summary["devices"] == 100
        assert summary["cells"] == 10
        assert summary["intervals"] == 0

        with DatabaseManager(db_path) as manager:
            devices = manager.conn.execute("SELECT COUNT(*) FROM devices").fetchone()[0]
        assert devices == 100


class TestParamsCommands:
    def test_set_then_show(self, runner, initialized_db):
        result = runner.invoke(
            app, ["params", "set", DETECTION_TOGGLE, "1", "--db-path", initialized_db]
        )
        assert result.exit_code == 0, result.output

        result = runner.invoke(app, ["params", "show", "--db-path", initialized_db])

        assert result.exit_code == 0
        assert DETECTION_TOGGLE in result.output
        assert "SIMBOX_CALLS_ITSELF" in result.output

    def test_unknown_toggle_rejected(self, runner, initialized_db):
        result = runner.invoke(app, ["params", "set", "NOPE", "1", "--db-path", initialized_db])

        assert result.exit_code == 1


class TestInspectionCommands:
    def test_cohorts_on_empty_database(self, runner, initialized_db):
        result = runner.invoke(app, ["cohorts", "--db-path", initialized_db])

        assert result.exit_code == 0
        assert "No suspicious cohorts" in result.output

    def test_db_init_and_list(self, runner, tmp_path):
        db_path = str(tmp_path / "fresh.db")

        result = runner.invoke(app, ["db", "init", "--db-path", db_path])
        assert result.exit_code == 0, result.output

        result = runner.invoke(app, ["db", "list", "--db-path", db_path])
        assert result.exit_code == 0
        assert "devices" in result.output

    def test_version(self, runner):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
