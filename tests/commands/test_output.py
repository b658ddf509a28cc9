"""Tests for the output command."""

from __future__ import annotations

import json
from pathlib import Path

from click.testing import CliRunner

from envie.cli import cli
from tests.conftest import FakeWorld, module_dir


class TestOutputCommand:
    def test_quiet_key_values(
        self, cli_runner: CliRunner, project_root: Path, fake_terraform: FakeWorld
    ) -> None:
        fake_terraform.outputs[project_root / "services" / "network"] = {"vpc_id": "vpc-1"}
        fake_terraform.outputs[module_dir(project_root, "database", "dynamodb")] = {
            "table_name": "t-1"
        }
        result = cli_runner.invoke(
            cli, ["-q", "-C", str(project_root), "output", "-S", "database", "--merge-request", "1"]
        )
        assert result.exit_code == 0, result.output
        assert result.stdout.splitlines() == ["vpc_id=vpc-1", "table_name=t-1"]

    def test_output_file(
        self,
        cli_runner: CliRunner,
        project_root: Path,
        fake_terraform: FakeWorld,
        tmp_path: Path,
    ) -> None:
        target = tmp_path / "outputs.json"
        fake_terraform.outputs[project_root / "services" / "network"] = {"vpc_id": "vpc-1"}
        result = cli_runner.invoke(
            cli,
            [
                "--json",
                "-C",
                str(project_root),
                "output",
                "-S",
                "database",
                "--merge-request",
                "1",
                "-o",
                str(target),
            ],
        )
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["data"]["output_file"] == str(target)
        assert json.loads(target.read_text()) == {"vpc_id": "vpc-1"}

    def test_missing_workspace_selection(
        self, cli_runner: CliRunner, project_root: Path, fake_terraform: FakeWorld
    ) -> None:
        result = cli_runner.invoke(cli, ["-C", str(project_root), "output", "-S", "api"])
        assert result.exit_code == 1
        assert "--merge-request" in result.stderr
