"""Descriptor loading — YAML files to validated descriptor models.

``workspace.envie`` / ``.envie.yaml`` (manifest), ``.envie`` (service or
module), and ``environments.envie`` are all YAML.  Parsing uses
ruamel.yaml's safe loader; validation uses the pydantic models in
:mod:`envie.domain`.

Unreadable files raise :class:`FilesystemError`; unparsable or
schema-invalid files raise :class:`ConfigError`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from envie.domain.descriptors import ModuleDescriptor, ServiceDescriptor, WorkspaceManifest
from envie.domain.environments import EnvironmentConfig
from envie.domain.errors import ConfigError, FilesystemError

DESCRIPTOR_FILENAME = ".envie"
MANIFEST_FILENAMES: tuple[str, ...] = ("workspace.envie", ".envie.yaml")
ENVIRONMENTS_FILENAME = "environments.envie"


def read_yaml(path: Path) -> dict[str, Any]:
    """Read a YAML mapping from *path*.

    An empty file yields an empty dict.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        msg = f"Cannot read {path}: {exc}"
        raise FilesystemError(msg, path=str(path)) from exc

    try:
        data = YAML(typ="safe").load(raw)
    except YAMLError as exc:
        msg = f"Invalid YAML in {path}: {exc}"
        raise ConfigError(msg, path=str(path)) from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"Expected a mapping at the top of {path}, got {type(data).__name__}"
        raise ConfigError(msg, path=str(path))
    return data


def _load[M: BaseModel](model: type[M], path: Path, kind: str) -> M:
    data = read_yaml(path)
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in exc.errors()
        )
        msg = f"Failed to parse {kind} {path}: {problems}"
        raise ConfigError(msg, path=str(path)) from exc


def load_workspace_manifest(path: Path) -> WorkspaceManifest:
    """Load a ``workspace.envie`` manifest."""
    return _load(WorkspaceManifest, path, "workspace manifest")


def load_service_descriptor(path: Path) -> ServiceDescriptor:
    """Load a service ``.envie`` file."""
    return _load(ServiceDescriptor, path, "service descriptor")


def load_module_descriptor(path: Path) -> ModuleDescriptor:
    """Load a module-local ``.envie`` override."""
    return _load(ModuleDescriptor, path, "module descriptor")


def load_environment_config(path: Path) -> EnvironmentConfig:
    """Load ``environments.envie``."""
    return _load(EnvironmentConfig, path, "environment config")


def find_manifest(root: Path, names: tuple[str, ...] = MANIFEST_FILENAMES) -> Path | None:
    """Return the first manifest file present directly in *root*."""
    for name in names:
        candidate = root / name
        if candidate.is_file():
            return candidate
    return None
