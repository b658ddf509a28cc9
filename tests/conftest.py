"""Shared pytest fixtures and test helpers for envie tests."""

from __future__ import annotations

import logging
import textwrap
from collections.abc import Generator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest
import structlog
from click.testing import CliRunner

from envie.config.settings import EnvieSettings
from envie.domain.errors import ProvisionerError
from envie.infrastructure.project import Project
from envie.services.telemetry import disable_telemetry


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's ENVIE_* environment out of every test."""
    monkeypatch.delenv("ENVIE_PROJECT_ROOT", raising=False)


@pytest.fixture(autouse=True)
def _reset_cli_state() -> Generator[None]:
    """Undo the logging and telemetry setup a CLI invocation leaves behind."""
    envie_level = logging.getLogger("envie").level
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        if isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter):
            root.removeHandler(handler)
    logging.getLogger("envie").setLevel(envie_level)
    disable_telemetry()


# ---------------------------------------------------------------------------
# Sample monorepo
# ---------------------------------------------------------------------------


def write(path: Path, content: str) -> Path:
    """Write dedented *content* to *path*, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(content).lstrip(), encoding="utf-8")
    return path


MANIFEST = """
    version: 1.0
    project:
      name: myapp
      description: Sample monorepo
    services:
      - path: services/network
      - path: services/database
      - path: services/api
        name: api
"""

ENVIRONMENTS = """
    ephemeral:
      naming_pattern: "{project}-{id}"
      backend:
        type: s3
        config:
          bucket: tf-ephemeral
          region: eu-west-1
    stable:
      sandbox:
        workspace: sandbox
        description: Shared sandbox
        backend:
          type: s3
          config:
            bucket: tf-stable
            region: eu-west-1
      prod:
        workspace: production
        backend:
          type: s3
          config:
            bucket: tf-prod
            region: eu-west-1
            key_pattern: "prod/{service}/{module}.tfstate"
"""

NETWORK = """
    name: network
    description: Shared VPC
    modules:
      - name: vpc
"""

DATABASE = """
    name: database
    depends:
      - ../network
    modules:
      - name: dynamodb
        depends:
          - path: network/vpc
            environment: stable.sandbox
"""

API = """
    name: api
    depends:
      - ../database
    modules:
      - name: gateway
        depends:
          - path: lambda
            environment: ephemeral
      - name: lambda
        depends:
          - path: ../../../database/modules/dynamodb
            environment: ephemeral
"""

LAMBDA_TF = """
    data "terraform_remote_state" "database" {
      backend = "s3"
      config = {
        bucket = "tf-ephemeral"
        key    = "ephemeral/myapp-123/database/dynamodb/terraform.tfstate"
      }
    }

    data "terraform_remote_state" "legacy" {
      backend = "s3"
      config = {
        bucket = "old"
      }
    }

    resource "aws_lambda_function" "fn" {
      environment {
        variables = {
          TABLE = data.terraform_remote_state.database.outputs.table_name
        }
      }
    }
"""


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """Three-service monorepo: api -> database -> network.

    ``api/gateway`` references its sibling ``lambda``; ``api/lambda``
    references ``database/dynamodb`` (ephemeral) by relative path; and
    ``database/dynamodb`` reads ``network/vpc`` from ``stable.sandbox``.
    """
    root = tmp_path / "repo"
    write(root / "workspace.envie", MANIFEST)
    write(root / "environments.envie", ENVIRONMENTS)
    write(root / "services" / "network" / ".envie", NETWORK)
    write(root / "services" / "database" / ".envie", DATABASE)
    write(root / "services" / "api" / ".envie", API)
    write(root / "services" / "network" / "modules" / "vpc" / "main.tf", 'resource "x" "y" {}\n')
    write(root / "services" / "database" / "modules" / "dynamodb" / "main.tf", "")
    write(root / "services" / "api" / "modules" / "gateway" / "main.tf", "")
    write(root / "services" / "api" / "modules" / "lambda" / "main.tf", LAMBDA_TF)
    return root.resolve()


# ---------------------------------------------------------------------------
# Fake provisioner
# ---------------------------------------------------------------------------


@dataclass
class FakeWorld:
    """Shared state behind every :class:`FakeProvisioner` of one test."""

    calls: list[tuple[Path, str, tuple[Any, ...]]] = field(default_factory=list)
    workspaces: dict[Path, list[str]] = field(default_factory=dict)
    selected: dict[Path, str] = field(default_factory=dict)
    outputs: dict[Path, dict[str, Any]] = field(default_factory=dict)
    failures: set[tuple[Path, str]] = field(default_factory=set)

    def factory(self, directory: Path) -> FakeProvisioner:
        return FakeProvisioner(Path(directory), self)

    def dirs(self, op: str) -> list[Path]:
        """Directories *op* ran in, in call order."""
        return [directory for directory, name, _ in self.calls if name == op]


class FakeProvisioner:
    """In-memory stand-in for ``terraform`` in one directory."""

    def __init__(self, directory: Path, world: FakeWorld) -> None:
        self.directory = directory
        self.world = world

    def _record(self, op: str, *args: Any) -> None:
        self.world.calls.append((self.directory, op, args))
        if (self.directory, op) in self.world.failures:
            msg = f"terraform {op} failed in {self.directory}"
            raise ProvisionerError(msg, directory=str(self.directory))

    def init(self, *, upgrade: bool = False) -> None:
        self._record("init", upgrade)

    def workspace_list(self) -> list[str]:
        self._record("workspace_list")
        return ["default", *self.world.workspaces.get(self.directory, [])]

    def workspace_show(self) -> str:
        self._record("workspace_show")
        return self.world.selected.get(self.directory, "default")

    def workspace_select(self, name: str) -> None:
        self._record("workspace_select", name)
        self.world.selected[self.directory] = name

    def workspace_new(self, name: str) -> None:
        self._record("workspace_new", name)
        self.world.workspaces.setdefault(self.directory, []).append(name)
        self.world.selected[self.directory] = name

    def workspace_delete(self, name: str) -> None:
        self._record("workspace_delete", name)
        self.world.workspaces.get(self.directory, []).remove(name)

    def apply(self, variables: Any = None) -> None:
        self._record("apply")

    def destroy(self, variables: Any = None) -> None:
        self._record("destroy")

    def outputs(self) -> dict[str, Any]:
        self._record("outputs")
        return dict(self.world.outputs.get(self.directory, {}))


@pytest.fixture
def world() -> FakeWorld:
    return FakeWorld()


@pytest.fixture
def project(project_root: Path, world: FakeWorld) -> Project:
    """Project on the sample monorepo wired to the fake provisioner."""
    settings = EnvieSettings.from_cli(project_root=project_root)
    return Project(settings, provisioner_factory=world.factory)


@pytest.fixture
def fake_terraform(world: FakeWorld, monkeypatch: pytest.MonkeyPatch) -> Generator[FakeWorld]:
    """Route every Project the CLI builds to the fake provisioner."""
    monkeypatch.setattr(
        "envie.infrastructure.project.terraform_factory",
        lambda **_kwargs: world.factory,
    )
    yield world


def module_dir(root: Path, service: str, module: str) -> Path:
    return root / "services" / service / "modules" / module
