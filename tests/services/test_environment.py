"""Tests for EnvironmentService — workspace listing and token resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from envie.infrastructure.project import Project
from envie.services.deploy import DeployService
from envie.services.environment import EnvironmentService
from tests.conftest import FakeWorld


@pytest.fixture
def state_dir(project_root: Path, world: FakeWorld) -> Path:
    state = project_root / ".envie"
    state.mkdir()
    world.workspaces[state] = ["myapp-1", "myapp-2-auth", "scratch"]
    world.selected[state] = "myapp-2-auth"
    return state


class TestListEnvironments:
    def test_without_state_dir(self, project: Project) -> None:
        result = EnvironmentService(project).list_environments()
        assert result.ok, result.error
        assert result.data["project"] == "myapp"
        assert result.data["current"] == "default"
        assert result.data["ephemeral"] == []
        assert result.data["stable"] == [
            {"name": "prod", "workspace": "production", "backend": "s3", "description": ""},
            {
                "name": "sandbox",
                "workspace": "sandbox",
                "backend": "s3",
                "description": "Shared sandbox",
            },
        ]

    def test_ephemeral_workspaces(self, project: Project, state_dir: Path) -> None:
        result = EnvironmentService(project).list_environments()
        assert result.data["current"] == "myapp-2-auth"
        assert result.data["ephemeral"] == [
            {"workspace": "myapp-1", "change_id": "1", "current": False},
            {"workspace": "myapp-2-auth", "change_id": "2-auth", "current": True},
        ]

    def test_provisioner_failure(
        self, project: Project, state_dir: Path, world: FakeWorld
    ) -> None:
        world.failures.add((state_dir, "workspace_show"))
        result = EnvironmentService(project).list_environments()
        assert not result.ok
        assert result.error is not None
        assert result.error.code == "PROVISIONER_ERROR"


class TestCurrent:
    def test_default_workspace(self, project: Project) -> None:
        result = EnvironmentService(project).current()
        assert result.ok
        assert result.data == {"workspace": "default", "kind": None, "label": None}
        assert result.warnings == ["No ephemeral workspace selected"]

    def test_ephemeral_workspace(self, project: Project, state_dir: Path) -> None:
        result = EnvironmentService(project).current()
        assert result.data == {
            "workspace": "myapp-2-auth",
            "kind": "ephemeral",
            "label": "ephemeral",
        }

    def test_stable_workspace(self, project: Project, state_dir: Path, world: FakeWorld) -> None:
        world.selected[state_dir] = "sandbox"
        result = EnvironmentService(project).current()
        assert result.data == {"workspace": "sandbox", "kind": "stable", "label": "sandbox"}

    def test_unknown_literal_workspace(
        self, project: Project, state_dir: Path, world: FakeWorld
    ) -> None:
        world.selected[state_dir] = "scratch"
        result = EnvironmentService(project).current()
        assert not result.ok
        assert result.error is not None
        assert result.error.code == "VALIDATION_ERROR"


class TestResolve:
    def test_stable_with_state_key(self, project: Project) -> None:
        result = EnvironmentService(project).resolve(
            "stable.prod", service="database", module="dynamodb", change_id="1"
        )
        assert result.ok, result.error
        assert result.data["workspace"] == "production"
        assert result.data["kind"] == "stable"
        assert result.data["label"] == "prod"
        assert result.data["state_key"] == "prod/database/dynamodb.tfstate"
        backend = result.data["backend_config"]
        assert 'bucket = "tf-prod"' in backend
        assert "key_pattern" not in backend

    def test_ephemeral_bound_to_change(self, project: Project) -> None:
        result = EnvironmentService(project).resolve("ephemeral", change_id="123")
        assert result.data["workspace"] == "myapp-123"
        assert "state_key" not in result.data

    def test_ephemeral_id_requires_known_workspace(
        self, project: Project, state_dir: Path
    ) -> None:
        service = EnvironmentService(project)
        assert service.resolve("ephemeral.1").data["workspace"] == "myapp-1"
        missing = service.resolve("ephemeral.99")
        assert not missing.ok

    def test_unknown_stable(self, project: Project) -> None:
        result = EnvironmentService(project).resolve("stable.staging", change_id="1")
        assert not result.ok
        assert result.error is not None
        assert "staging" in result.error.message

    def test_unknown_module(self, project: Project) -> None:
        result = EnvironmentService(project).resolve(
            "ephemeral", service="api", module="queue", change_id="1"
        )
        assert not result.ok
        assert result.error is not None
        assert result.error.code == "VALIDATION_ERROR"


# ── Workspace lifecycle ──────────────────────────────────────────────


class TestStart:
    def test_creates_state_dir_and_workspace(
        self, project: Project, project_root: Path, world: FakeWorld
    ) -> None:
        result = EnvironmentService(project).start("123")
        assert result.ok, result.error
        assert result.data == {"workspace": "myapp-123", "change_id": "123", "created": True}
        state = project_root / ".envie"
        assert state.is_dir()
        assert [op for directory, op, _ in world.calls if directory == state] == [
            "init",
            "workspace_list",
            "workspace_new",
            "apply",
        ]
        assert project.current_workspace() == "myapp-123"

    def test_selects_existing_workspace(
        self, project: Project, state_dir: Path, world: FakeWorld
    ) -> None:
        result = EnvironmentService(project).start("1")
        assert result.ok, result.error
        assert result.data["created"] is False
        assert world.selected[state_dir] == "myapp-1"
        assert "workspace_new" not in [op for _, op, _ in world.calls]

    def test_invalid_change_id(self, project: Project, world: FakeWorld) -> None:
        result = EnvironmentService(project).start("abc")
        assert not result.ok
        assert result.error is not None
        assert result.error.code == "VALIDATION_ERROR"
        assert world.calls == []

    def test_apply_failure(self, project: Project, project_root: Path, world: FakeWorld) -> None:
        world.failures.add((project_root / ".envie", "apply"))
        result = EnvironmentService(project).start("123")
        assert not result.ok
        assert result.error is not None
        assert result.error.code == "PROVISIONER_ERROR"

    def test_started_workspace_is_resolvable_elsewhere(self, project: Project) -> None:
        service = EnvironmentService(project)
        assert service.start("123").ok
        resolved = project.resolver("myapp-456").resolve("ephemeral.123")
        assert resolved.workspace == "myapp-123"

    def test_deploy_uses_started_workspace(self, project: Project) -> None:
        EnvironmentService(project).start("7")
        result = DeployService(project).plan("api")
        assert result.ok, result.error
        assert result.data["workspace"] == "myapp-7"


class TestDestroy:
    def test_destroys_named_workspace(
        self, project: Project, state_dir: Path, world: FakeWorld
    ) -> None:
        result = EnvironmentService(project).destroy("1")
        assert result.ok, result.error
        assert result.data == {"workspace": "myapp-1"}
        ops = [(op, args) for directory, op, args in world.calls if directory == state_dir]
        assert ops[-4:] == [
            ("workspace_select", ("myapp-1",)),
            ("destroy", ()),
            ("workspace_select", ("default",)),
            ("workspace_delete", ("myapp-1",)),
        ]
        assert "myapp-1" not in project.known_workspaces()

    def test_destroys_current_workspace(
        self, project: Project, state_dir: Path, world: FakeWorld
    ) -> None:
        result = EnvironmentService(project).destroy()
        assert result.ok, result.error
        assert result.data["workspace"] == "myapp-2-auth"
        assert world.selected[state_dir] == "default"

    def test_refuses_default(self, project: Project, world: FakeWorld) -> None:
        result = EnvironmentService(project).destroy()
        assert not result.ok
        assert result.error is not None
        assert "No active ephemeral workspace" in result.error.message
        assert "destroy" not in [op for _, op, _ in world.calls]

    def test_unknown_workspace(self, project: Project, state_dir: Path, world: FakeWorld) -> None:
        result = EnvironmentService(project).destroy("99")
        assert not result.ok
        assert result.error is not None
        assert result.error.message == "Ephemeral workspace 'myapp-99' does not exist"
        assert "destroy" not in [op for _, op, _ in world.calls]
