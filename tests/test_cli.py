"""Tests for CLI commands."""

from pathlib import Path

import pytest
from typer.testing import CliRunner

from cadence.cli.app import app


@pytest.fixture
def cli_runner() -> CliRunner:
    return CliRunner(env={"NO_COLOR": "1"})


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.toml"
    path.write_text(
        f"""
[scheduling]
default_timezone = "Asia/Tokyo"

[trigger]
secret = "cli-secret"
url = "http://127.0.0.1:9/jobs/scheduler/tick"
max_attempts = 1
backoff_ms = 1
timeout_seconds = 1.0

[database]
path = "{tmp_path / "cadence.db"}"

[subjects.quote]
name = "Daily quote"
instructions = "Share one quote."
"""
    )
    return path


class TestConfigCommand:
    def test_show(self, cli_runner: CliRunner, config_file: Path):
        result = cli_runner.invoke(app, ["config", "show", "--path", str(config_file)])
        assert result.exit_code == 0
        assert "[subjects.quote]" in result.stdout

    def test_show_missing_file(self, cli_runner: CliRunner, tmp_path: Path):
        result = cli_runner.invoke(
            app, ["config", "show", "--path", str(tmp_path / "missing.toml")]
        )
        assert result.exit_code == 1
        assert "not found" in result.stdout

    def test_validate(self, cli_runner: CliRunner, config_file: Path):
        result = cli_runner.invoke(
            app, ["config", "validate", "--path", str(config_file)]
        )
        assert result.exit_code == 0
        assert "valid" in result.stdout.lower()

    def test_validate_bad_subject(self, cli_runner: CliRunner, tmp_path: Path):
        path = tmp_path / "bad.toml"
        path.write_text('[subjects."no spaces"]\nname = "x"\ninstructions = "y"\n')
        result = cli_runner.invoke(app, ["config", "validate", "--path", str(path)])
        assert result.exit_code == 1
        assert "subjects" in result.stdout

    def test_unknown_action(self, cli_runner: CliRunner):
        result = cli_runner.invoke(app, ["config", "explode"])
        assert result.exit_code == 1


class TestScheduleCommand:
    def test_list_empty(self, cli_runner: CliRunner, config_file: Path):
        result = cli_runner.invoke(
            app, ["schedule", "list", "--config", str(config_file)]
        )
        assert result.exit_code == 0
        assert "No schedules found" in result.stdout

    def test_due(self, cli_runner: CliRunner, config_file: Path):
        result = cli_runner.invoke(app, ["schedule", "due", "--config", str(config_file)])
        assert result.exit_code == 0
        assert "0 schedule(s) due" in result.stdout

    def test_id_required(self, cli_runner: CliRunner, config_file: Path):
        result = cli_runner.invoke(
            app, ["schedule", "disable", "--config", str(config_file)]
        )
        assert result.exit_code == 1
        assert "--id is required" in result.stdout

    def test_unknown_schedule(self, cli_runner: CliRunner, config_file: Path):
        result = cli_runner.invoke(
            app, ["schedule", "disable", "--id", "nope", "--config", str(config_file)]
        )
        assert result.exit_code == 1

    def test_missing_config(self, cli_runner: CliRunner, tmp_path: Path):
        result = cli_runner.invoke(
            app, ["schedule", "list", "--config", str(tmp_path / "missing.toml")]
        )
        assert result.exit_code == 1


class TestTickCommand:
    def test_unreachable_server(self, cli_runner: CliRunner, config_file: Path):
        result = cli_runner.invoke(app, ["tick", "--config", str(config_file)])
        assert result.exit_code == 1
        assert "Tick failed" in result.stdout
