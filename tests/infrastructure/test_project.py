"""Tests for Project — the per-invocation owner of registry and environments."""

from __future__ import annotations

from pathlib import Path

from envie.config.settings import EnvieSettings
from envie.infrastructure.project import Project
from tests.conftest import FakeWorld, write


class TestProject:
    def test_registry_is_lazy_and_cached(self, project: Project) -> None:
        assert project._registry is None
        registry = project.registry
        assert project.registry is registry

    def test_project_name_from_manifest(self, project: Project) -> None:
        assert project.project_name == "myapp"

    def test_project_name_from_environments(self, tmp_path: Path, world: FakeWorld) -> None:
        write(tmp_path / "svc" / ".envie", "name: svc\n")
        write(
            tmp_path / "environments.envie",
            "project:\n  name: fromenv\nephemeral:\n  backend:\n    type: local\n",
        )
        settings = EnvieSettings.from_cli(project_root=tmp_path)
        assert Project(settings, provisioner_factory=world.factory).project_name == "fromenv"

    def test_project_name_falls_back_to_directory(self, tmp_path: Path, world: FakeWorld) -> None:
        root = tmp_path / "platform"
        write(root / "svc" / ".envie", "name: svc\n")
        settings = EnvieSettings.from_cli(project_root=root)
        assert Project(settings, provisioner_factory=world.factory).project_name == "platform"

    def test_environment_config_loaded(self, project: Project) -> None:
        assert sorted(project.environment_config.stable) == ["prod", "sandbox"]

    def test_default_environment_config(self, tmp_path: Path, world: FakeWorld) -> None:
        settings = EnvieSettings.from_cli(project_root=tmp_path)
        config = Project(settings, provisioner_factory=world.factory).environment_config
        assert config.stable == {}
        assert config.ephemeral.backend.backend_type == "s3"

    def test_no_state_dir_means_default_workspace(self, project: Project, world: FakeWorld) -> None:
        assert project.current_workspace() == "default"
        assert project.known_workspaces() == []
        assert world.calls == []

    def test_workspaces_from_state_dir(
        self, project: Project, project_root: Path, world: FakeWorld
    ) -> None:
        state = project_root / ".envie"
        state.mkdir()
        world.workspaces[state] = ["myapp-1", "myapp-2"]
        world.selected[state] = "myapp-2"
        assert project.known_workspaces() == ["myapp-1", "myapp-2"]
        assert project.current_workspace() == "myapp-2"

    def test_resolver_knows_current_workspace(self, project: Project) -> None:
        resolver = project.resolver("myapp-77")
        assert resolver.resolve("ephemeral.77").workspace == "myapp-77"
        assert resolver.project_name == "myapp"
