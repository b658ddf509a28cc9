"""Project — the per-invocation owner of registry, environments and provisioners.

The Project is the single dependency injected into every service.  It
lazily discovers the service registry, loads ``environments.envie``, and
hands out provisioners bound to a directory.  Nothing is cached across
invocations: each command builds its own Project and drops it afterwards.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from envie.domain.environments import (
    EnvironmentConfig,
    EnvironmentResolver,
    default_environment_config,
)
from envie.infrastructure.descriptors import load_environment_config
from envie.infrastructure.graph.engine import DependencyGraph
from envie.infrastructure.provisioner import (
    DEFAULT_WORKSPACE,
    Provisioner,
    ProvisionerFactory,
    terraform_factory,
)
from envie.infrastructure.registry import ServiceRegistry

if TYPE_CHECKING:
    from envie.config.settings import EnvieSettings

logger = logging.getLogger(__name__)


class Project:
    """Lazy access to everything a command needs about the project on disk."""

    def __init__(
        self,
        settings: EnvieSettings,
        *,
        provisioner_factory: ProvisionerFactory | None = None,
    ) -> None:
        self.settings = settings
        self.root = settings.project_root
        self._provisioner_factory = provisioner_factory or terraform_factory(
            binary=settings.provisioner.binary,
            env=settings.provisioner.env,
        )
        self._registry: ServiceRegistry | None = None
        self._graph: DependencyGraph | None = None
        self._environment_config: EnvironmentConfig | None = None

    @property
    def registry(self) -> ServiceRegistry:
        """The service registry (discovered on first access)."""
        if self._registry is None:
            discovery = self.settings.discovery
            self._registry = ServiceRegistry.discover(
                self.root,
                max_depth=discovery.max_depth,
                descriptor_name=discovery.descriptor_name,
                manifest_names=discovery.manifest_names,
            )
        return self._registry

    @property
    def graph(self) -> DependencyGraph:
        if self._graph is None:
            self._graph = DependencyGraph(self.registry)
        return self._graph

    @property
    def environment_config(self) -> EnvironmentConfig:
        """``environments.envie`` if present, else the built-in default."""
        if self._environment_config is None:
            path = self.root / self.settings.environments.file
            if path.is_file():
                self._environment_config = load_environment_config(path)
            else:
                logger.debug("No %s in %s; using default environments", path.name, self.root)
                self._environment_config = default_environment_config()
        return self._environment_config

    @property
    def project_name(self) -> str:
        """Manifest project name, else environments project name, else the root's name."""
        name = self.registry.project_name
        if name:
            return name
        env_project = self.environment_config.project
        if env_project is not None:
            return env_project.name
        return self.root.name

    @property
    def state_dir(self) -> Path:
        """Directory whose provisioner tracks the project's workspaces."""
        return self.root / self.settings.provisioner.state_dir

    def provisioner(self, directory: Path) -> Provisioner:
        return self._provisioner_factory(directory)

    def known_workspaces(self) -> list[str]:
        """Workspaces the state directory's provisioner knows about, minus ``default``."""
        if not self.state_dir.is_dir():
            return []
        return [
            ws
            for ws in self.provisioner(self.state_dir).workspace_list()
            if ws != DEFAULT_WORKSPACE
        ]

    def current_workspace(self) -> str:
        """Workspace currently selected in the state directory."""
        if not self.state_dir.is_dir():
            return DEFAULT_WORKSPACE
        return self.provisioner(self.state_dir).workspace_show()

    def resolver(
        self,
        current_workspace: str,
        *,
        available_workspaces: list[str] | None = None,
    ) -> EnvironmentResolver:
        """Environment resolver bound to *current_workspace*."""
        if available_workspaces is None:
            available_workspaces = self.known_workspaces()
        if current_workspace not in available_workspaces:
            available_workspaces = [*available_workspaces, current_workspace]
        return EnvironmentResolver(
            current_workspace,
            self.project_name,
            self.environment_config,
            available_workspaces,
            allow_backend_fallback=self.settings.environments.allow_backend_fallback,
        )
