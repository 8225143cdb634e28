"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
They don't validate correctness deeply - just that commands work.

Usage:
    pytest tests/smoke/test_cli_commands.py -v
    pytest tests/smoke/test_cli_commands.py -v -m smoke
"""

import subprocess
import sys
from pathlib import Path

import pytest
from loguru import logger
from typer.testing import CliRunner

from wordbank.cli.main import app

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

# Project root
PROJECT_ROOT = Path(__file__).parent.parent.parent

runner = CliRunner()


def run_cli_command(command: str, timeout: int = 30) -> tuple[int, str, str]:
    """
    Run a CLI command and return exit code, stdout, stderr.

    Args:
        command: The command to run (after 'python -m wordbank.cli.main')
        timeout: Maximum time to wait

    Returns:
        Tuple of (exit_code, stdout, stderr)
    """
    full_command = f"{sys.executable} -m wordbank.cli.main {command}"

    result = subprocess.run(
        full_command,
        shell=True,
        cwd=PROJECT_ROOT,
        capture_output=True,
        text=True,
        timeout=timeout,
    )

    return result.returncode, result.stdout, result.stderr


@pytest.fixture
def cli(engine):
    """Invoke the CLI in-process against the test database."""

    def _invoke(*args: str):
        return runner.invoke(app, list(args))

    yield _invoke
    # The CLI callback points loguru at the runner's (now closed) stderr
    logger.remove()
    logger.add(sys.stderr)


class TestCLIHelp:
    """Test that help commands work."""

    def test_main_help(self):
        """Main help should display without errors."""
        code, stdout, stderr = run_cli_command("--help")

        assert code == 0, f"Help failed: {stderr}"
        assert "wordbank" in stdout.lower()
        assert "Commands" in stdout

    @pytest.mark.parametrize("group", ["quota", "db"])
    def test_group_help(self, group):
        code, stdout, stderr = run_cli_command(f"{group} --help")
        assert code == 0, f"{group} help failed: {stderr}"

    @pytest.mark.parametrize("command", ["next", "act", "list", "subjects", "generate"])
    def test_command_help(self, command):
        code, stdout, stderr = run_cli_command(f"{command} --help")
        assert code == 0, f"{command} help failed: {stderr}"
        assert "Usage" in stdout


class TestDatabaseCommands:
    def test_db_init(self, cli):
        result = cli("db", "init")
        assert result.exit_code == 0, result.output
        assert "Database initialized" in result.output


class TestQuotaCommands:
    def test_status(self, cli):
        result = cli("quota", "status", "alice")
        assert result.exit_code == 0, result.output
        assert "0/3" in result.output

    def test_set_tier(self, cli):
        result = cli("quota", "set-tier", "alice", "premium")
        assert result.exit_code == 0, result.output
        assert "0/50" in result.output

    def test_set_unknown_tier_fails(self, cli):
        result = cli("quota", "set-tier", "alice", "platinum")
        assert result.exit_code == 1

    def test_set_limit_and_report(self, cli):
        assert cli("quota", "set-limit", "alice", "7").exit_code == 0

        result = cli("quota", "report")

        assert result.exit_code == 0, result.output
        assert "Quota Report" in result.output
        assert "Learners: 1" in result.output

    def test_reset(self, cli):
        result = cli("quota", "reset", "alice", "--reason", "smoke")
        assert result.exit_code == 0, result.output
        assert "Quota reset for alice" in result.output

    def test_bulk_reset(self, cli):
        cli("quota", "status", "alice")
        result = cli("quota", "bulk-reset", "free")
        assert result.exit_code == 0, result.output
        assert "Reset 1 learner(s)" in result.output


class TestLearnerCommands:
    def test_subjects(self, cli):
        result = cli("subjects", "alice", "Photography:2", "Biology")
        assert result.exit_code == 0, result.output
        assert "Photography (2.0)" in result.output
        assert "Biology (-)" in result.output

    def test_bad_subject_weight(self, cli):
        result = cli("subjects", "alice", "Photography:lots")
        assert result.exit_code != 0

    def test_empty_wordbank(self, cli):
        result = cli("list", "alice")
        assert result.exit_code == 0, result.output
        assert "No terms yet" in result.output

    def test_list_rejects_unknown_status(self, cli):
        result = cli("list", "alice", "--status", "forgotten")
        assert result.exit_code != 0

    def test_act_on_unknown_delivery(self, cli):
        result = cli("act", "00000000-0000-0000-0000-000000000000", "opened")
        assert result.exit_code == 1
