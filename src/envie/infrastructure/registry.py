"""Service registry — discover services and modules under a project root.

Two discovery modes, tried in order:

1. **Explicit**: a workspace manifest (``workspace.envie`` or
   ``.envie.yaml``) at the root lists service paths.  A listed path whose
   ``.envie`` descriptor is missing or malformed is a :class:`ConfigError`.
2. **Implicit**: a bounded-depth scan for directories holding a ``.envie``
   file.  Descriptors that fail to load are skipped with a warning.

Each module's directory defaults to ``modules/<name>``; a ``.envie`` file
inside the module directory replaces the inline declaration.

The registry is a value owned by the calling command: built once per
invocation and read-only afterwards.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType

from envie.domain.descriptors import ModuleDescriptor, ServiceDescriptor, WorkspaceManifest
from envie.domain.errors import (
    ConfigError,
    DependencyError,
    FilesystemError,
    ValidationError,
)
from envie.domain.plan import DeploymentPlan
from envie.infrastructure.descriptors import (
    DESCRIPTOR_FILENAME,
    MANIFEST_FILENAMES,
    find_manifest,
    load_module_descriptor,
    load_service_descriptor,
    load_workspace_manifest,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 3

# Directories never descended into during implicit discovery.
_SKIP_DIRS = frozenset({".git", ".terraform", ".envie", "node_modules", "__pycache__"})


@dataclass(frozen=True)
class DiscoveredModule:
    """A module with its owning service and resolved directory."""

    service: str
    path: Path
    descriptor: ModuleDescriptor

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def key(self) -> str:
        """Registry key: ``service/module``."""
        return f"{self.service}/{self.name}"


@dataclass(frozen=True)
class DiscoveredService:
    """A service descriptor with its resolved directory and modules."""

    path: Path
    descriptor: ServiceDescriptor
    modules: tuple[DiscoveredModule, ...]

    @property
    def name(self) -> str:
        return self.descriptor.name

    def module(self, name: str) -> DiscoveredModule | None:
        for module in self.modules:
            if module.name == name:
                return module
        return None


def _normalize(path: Path) -> Path:
    """Lexically collapse ``.`` and ``..`` without touching the filesystem."""
    return Path(os.path.normpath(path))


class ServiceRegistry:
    """Name-indexed services and ``service/module``-indexed modules."""

    def __init__(
        self,
        root: Path,
        services: Mapping[str, DiscoveredService],
        *,
        manifest: WorkspaceManifest | None = None,
    ) -> None:
        self.root = root
        self.manifest = manifest
        self._services: Mapping[str, DiscoveredService] = MappingProxyType(dict(services))
        self._modules: Mapping[str, DiscoveredModule] = MappingProxyType(
            {module.key: module for service in services.values() for module in service.modules}
        )

    @property
    def services(self) -> Mapping[str, DiscoveredService]:
        return self._services

    @property
    def modules(self) -> Mapping[str, DiscoveredModule]:
        return self._modules

    @property
    def project_name(self) -> str | None:
        """Project name declared in the manifest, if any."""
        if self.manifest is not None and self.manifest.project is not None:
            return self.manifest.project.name
        return None

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    @classmethod
    def discover(
        cls,
        root: Path,
        *,
        max_depth: int = DEFAULT_MAX_DEPTH,
        descriptor_name: str = DESCRIPTOR_FILENAME,
        manifest_names: tuple[str, ...] = MANIFEST_FILENAMES,
    ) -> ServiceRegistry:
        """Discover every service reachable from *root*.

        Raises:
            ConfigError: If the manifest or an explicitly listed service is
                missing or malformed, or names collide.
            FilesystemError: If the manifest or a listed descriptor cannot
                be read.  Unreadable descriptors found by scanning are skipped.
        """
        root = root.resolve()
        manifest_path = find_manifest(root, manifest_names)

        discovered: list[DiscoveredService] = []
        manifest: WorkspaceManifest | None = None
        if manifest_path is not None:
            manifest = load_workspace_manifest(manifest_path)
            logger.debug("Using manifest %s (%d services)", manifest_path, len(manifest.services))
            for entry in manifest.services:
                service_path = _normalize(root / entry.path)
                service = _load_service(service_path, descriptor_name)
                if entry.name is not None and entry.name != service.name:
                    msg = (
                        f"Manifest lists {entry.path} as '{entry.name}' but its "
                        f"descriptor declares '{service.name}'"
                    )
                    raise ConfigError(msg, path=str(service_path))
                discovered.append(service)
        else:
            for service_path in _scan_for_descriptors(root, descriptor_name, max_depth):
                try:
                    discovered.append(_load_service(service_path, descriptor_name))
                except (ConfigError, FilesystemError) as exc:
                    logger.warning("Skipping %s: %s", service_path, exc.message)
            discovered = _drop_module_directories(discovered)

        services: dict[str, DiscoveredService] = {}
        for service in discovered:
            existing = services.get(service.name)
            if existing is not None:
                msg = (
                    f"Duplicate service name '{service.name}' at {existing.path} "
                    f"and {service.path}"
                )
                raise ConfigError(msg, service=service.name)
            services[service.name] = service

        logger.debug("Discovered %d services under %s", len(services), root)
        return cls(root, services, manifest=manifest)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_service(self, name: str) -> DiscoveredService:
        service = self._services.get(name)
        if service is None:
            known = sorted(self._services)
            msg = f"Service '{name}' not found. Available: {known}"
            raise ValidationError(msg, service=name, available=known)
        return service

    def get_module(self, key: str) -> DiscoveredModule:
        module = self._modules.get(key)
        if module is None:
            msg = f"Module '{key}' not found"
            raise ValidationError(msg, module=key)
        return module

    def find_service_by_path(self, path: Path) -> DiscoveredService | None:
        """Service rooted at *path*, or the one whose root is its longest prefix.

        Prefix ties (only possible for identical roots) go to the lexically
        first service name.
        """
        target = path.resolve()
        candidates = [s for s in self._services.values() if target.is_relative_to(s.path)]
        if not candidates:
            return None
        candidates.sort(key=lambda s: (-len(s.path.parts), s.name))
        return candidates[0]

    def find_module_by_path(self, path: Path) -> DiscoveredModule | None:
        target = _normalize(path.resolve() if path.is_absolute() else self.root / path)
        for module in self._modules.values():
            if module.path == target:
                return module
        return None

    # ------------------------------------------------------------------
    # Dependency tokens
    # ------------------------------------------------------------------

    def resolve_dependency_name(self, token: str, service: DiscoveredService) -> str:
        """Service name a service-level ``depends`` token refers to.

        Relative tokens (``../database``) walk up from the service directory
        and match the final path component against registered names.
        ``service/module`` tokens yield their service part; bare names are
        returned as given.
        """
        if token.startswith("."):
            resolved = _normalize(service.path / token)
            for candidate in self._services.values():
                if candidate.path == resolved:
                    return candidate.name
            name = resolved.name
            if name in self._services:
                return name
            msg = (
                f"Dependency '{token}' of service '{service.name}' not found - "
                f"service '{name}' does not exist"
            )
            raise DependencyError(msg, service=service.name, dependency=token)
        if "/" in token:
            return token.split("/", 1)[0]
        return token

    def resolve_module_reference(self, reference: str, owner: DiscoveredModule) -> DiscoveredModule:
        """Module a module-level dependency reference points at.

        Accepted forms: a path relative to the owning module or service
        (``../database/modules/dynamodb``, ``./lambda``), ``service/module``,
        a sibling module name, or the name of a single-module service.

        Raises:
            DependencyError: If the reference matches no registered module.
        """
        if reference.startswith("."):
            owner_service = self._services[owner.service]
            for base in (owner.path, owner_service.path, owner_service.path / "modules"):
                resolved = _normalize(base / reference)
                found = self._module_at(resolved)
                if found is not None:
                    return found
                service = next((s for s in self._services.values() if s.path == resolved), None)
                if service is not None and len(service.modules) == 1:
                    return service.modules[0]
            msg = f"Dependency '{reference}' of module '{owner.key}' does not match any module"
            raise DependencyError(msg, module=owner.key, dependency=reference)

        if "/" in reference:
            module = self._modules.get(reference)
            if module is None:
                msg = f"Dependency '{reference}' of module '{owner.key}' does not exist"
                raise DependencyError(msg, module=owner.key, dependency=reference)
            return module

        sibling = self._services[owner.service].module(reference)
        if sibling is not None:
            return sibling
        service = self._services.get(reference)
        if service is not None and len(service.modules) == 1:
            return service.modules[0]
        if service is not None:
            msg = (
                f"Dependency '{reference}' of module '{owner.key}' names a service with "
                f"{len(service.modules)} modules; use '{reference}/<module>'"
            )
        else:
            msg = f"Dependency '{reference}' of module '{owner.key}' does not exist"
        raise DependencyError(msg, module=owner.key, dependency=reference)

    def _module_at(self, path: Path) -> DiscoveredModule | None:
        for module in self._modules.values():
            if module.path == path:
                return module
        return None

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    def resolve_dependencies(self, service_name: str) -> DeploymentPlan:
        """Topological deployment order for *service_name*.

        Raises:
            ValidationError: Unknown service.
            DependencyError: Unresolvable dependency token or a cycle.
        """
        from envie.infrastructure.graph.engine import DependencyGraph

        return DependencyGraph(self).resolve(service_name)


# ---------------------------------------------------------------------------
# Discovery helpers
# ---------------------------------------------------------------------------


def _load_service(service_path: Path, descriptor_name: str) -> DiscoveredService:
    descriptor_path = service_path / descriptor_name
    if not descriptor_path.is_file():
        msg = f"No {descriptor_name} file found in {service_path}"
        raise ConfigError(msg, path=str(service_path))

    descriptor = load_service_descriptor(descriptor_path)
    modules: list[DiscoveredModule] = []
    seen: set[str] = set()
    for inline in descriptor.modules:
        module_path = _normalize(service_path / inline.relative_path())
        override = module_path / descriptor_name
        module_descriptor = load_module_descriptor(override) if override.is_file() else inline
        if module_descriptor.name in seen:
            msg = f"Duplicate module name '{module_descriptor.name}' in service '{descriptor.name}'"
            raise ConfigError(msg, service=descriptor.name, module=module_descriptor.name)
        seen.add(module_descriptor.name)
        modules.append(
            DiscoveredModule(
                service=descriptor.name, path=module_path, descriptor=module_descriptor
            )
        )

    return DiscoveredService(path=service_path, descriptor=descriptor, modules=tuple(modules))


def _scan_for_descriptors(root: Path, descriptor_name: str, max_depth: int) -> list[Path]:
    """Directories holding *descriptor_name*, descriptor depth <= *max_depth*."""
    found: list[Path] = []

    def walk(directory: Path, depth: int) -> None:
        if (directory / descriptor_name).is_file():
            found.append(directory)
        if depth + 1 >= max_depth:
            return
        try:
            children = sorted(p for p in directory.iterdir() if p.is_dir())
        except OSError as exc:
            logger.warning("Cannot list %s: %s", directory, exc)
            return
        for child in children:
            if child.name in _SKIP_DIRS:
                continue
            walk(child, depth + 1)

    walk(root, 0)
    return found


def _drop_module_directories(services: list[DiscoveredService]) -> list[DiscoveredService]:
    """Remove scan hits that are really another service's module directory."""
    module_paths = {module.path for service in services for module in service.modules}
    return [service for service in services if service.path not in module_paths]
