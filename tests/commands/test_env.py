"""Tests for the env command group."""

from __future__ import annotations

import json
from pathlib import Path

from click.testing import CliRunner

from envie.cli import cli
from tests.conftest import FakeWorld


class TestEnvList:
    def test_lists_stable(
        self, cli_runner: CliRunner, project_root: Path, fake_terraform: FakeWorld
    ) -> None:
        result = cli_runner.invoke(cli, ["-C", str(project_root), "env", "list"])
        assert result.exit_code == 0, result.output
        assert "stable.sandbox" in result.stdout
        assert "stable.prod" in result.stdout


class TestEnvCurrent:
    def test_default_warns(
        self, cli_runner: CliRunner, project_root: Path, fake_terraform: FakeWorld
    ) -> None:
        result = cli_runner.invoke(cli, ["-q", "-C", str(project_root), "env", "current"])
        assert result.exit_code == 0, result.output
        assert result.stdout.strip() == "default"
        assert "WARNING: No ephemeral workspace selected" in result.stderr


class TestEnvResolve:
    def test_state_key(
        self, cli_runner: CliRunner, project_root: Path, fake_terraform: FakeWorld
    ) -> None:
        result = cli_runner.invoke(
            cli,
            [
                "--json",
                "-C",
                str(project_root),
                "env",
                "resolve",
                "ephemeral",
                "-S",
                "api",
                "-m",
                "lambda",
                "--merge-request",
                "123",
            ],
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)["data"]
        assert data["state_key"] == "ephemeral/myapp-123/api/lambda/terraform.tfstate"
        assert 'bucket = "tf-ephemeral"' in data["backend_config"]

    def test_service_without_module(
        self, cli_runner: CliRunner, project_root: Path, fake_terraform: FakeWorld
    ) -> None:
        result = cli_runner.invoke(
            cli, ["-C", str(project_root), "env", "resolve", "stable.prod", "-S", "api"]
        )
        assert result.exit_code == 2
        assert "must be given together" in result.output

    def test_unknown_stable(
        self, cli_runner: CliRunner, project_root: Path, fake_terraform: FakeWorld
    ) -> None:
        result = cli_runner.invoke(
            cli, ["-C", str(project_root), "env", "resolve", "stable.staging"]
        )
        assert result.exit_code == 1
        assert "Stable environment 'staging' not found" in result.stderr


class TestEnvStart:
    def test_start_then_current(
        self, cli_runner: CliRunner, project_root: Path, fake_terraform: FakeWorld
    ) -> None:
        result = cli_runner.invoke(cli, ["-q", "-C", str(project_root), "env", "start", "123"])
        assert result.exit_code == 0, result.output
        assert result.stdout.strip() == "myapp-123"

        current = cli_runner.invoke(cli, ["-q", "-C", str(project_root), "env", "current"])
        assert current.stdout.strip() == "myapp-123"

    def test_invalid_id(
        self, cli_runner: CliRunner, project_root: Path, fake_terraform: FakeWorld
    ) -> None:
        result = cli_runner.invoke(cli, ["-C", str(project_root), "env", "start", "abc"])
        assert result.exit_code == 1
        assert "Invalid change id" in result.stderr


class TestEnvDestroy:
    def test_destroy_started_workspace(
        self, cli_runner: CliRunner, project_root: Path, fake_terraform: FakeWorld
    ) -> None:
        cli_runner.invoke(cli, ["-C", str(project_root), "env", "start", "123"])
        result = cli_runner.invoke(
            cli, ["--json", "-C", str(project_root), "env", "destroy", "123"]
        )
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["data"] == {"workspace": "myapp-123"}
        assert fake_terraform.selected[project_root / ".envie"] == "default"

    def test_nothing_to_destroy(
        self, cli_runner: CliRunner, project_root: Path, fake_terraform: FakeWorld
    ) -> None:
        result = cli_runner.invoke(cli, ["-C", str(project_root), "env", "destroy"])
        assert result.exit_code == 1
        assert "No active ephemeral workspace to destroy" in result.stderr
