"""Descriptor models — the typed form of workspace, service, and module files.

Attributes map 1:1 to the YAML keys of ``workspace.envie`` and ``.envie``
files.  Every model is frozen: once the registry has loaded a descriptor
nothing downstream may change it.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, PrivateAttr, field_validator

from envie.domain.errors import ValidationError
from envie.domain.tokens import EnvironmentToken, parse_environment_token


class ProjectInfo(BaseModel):
    """``project:`` block of the workspace manifest."""

    model_config = {"frozen": True}

    name: str
    description: str = ""


class ServiceEntry(BaseModel):
    """One explicitly listed service path in the workspace manifest."""

    model_config = {"frozen": True}

    path: str
    name: str | None = None


class WorkspaceManifest(BaseModel):
    """Root ``workspace.envie`` file."""

    model_config = {"frozen": True}

    version: str
    project: ProjectInfo | None = None
    services: list[ServiceEntry] = Field(default_factory=list)
    defaults: dict[str, Any] = Field(default_factory=dict)

    @field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, value: Any) -> Any:
        # ``version: 1.0`` in YAML is a float
        if isinstance(value, int | float):
            return str(value)
        return value


class DependencyReference(BaseModel):
    """A module-level pointer to another unit plus where to read its state."""

    model_config = {"frozen": True}

    path: str
    environment: str

    _token: EnvironmentToken = PrivateAttr()

    @field_validator("environment")
    @classmethod
    def _check_environment(cls, value: str) -> str:
        try:
            parse_environment_token(value)
        except ValidationError as exc:
            raise ValueError(exc.message) from exc
        return value.strip()

    def model_post_init(self, context: Any, /) -> None:
        self._token = parse_environment_token(self.environment)

    @property
    def token(self) -> EnvironmentToken:
        """The parsed environment token."""
        return self._token


class ModuleDescriptor(BaseModel):
    """A module declaration, inline in a service or in its own ``.envie``."""

    model_config = {"frozen": True}

    name: str
    description: str = ""
    path: str = ""
    depends: list[DependencyReference] = Field(default_factory=list)

    def relative_path(self) -> str:
        """Module directory relative to its service; ``modules/<name>`` if unset."""
        return self.path or f"modules/{self.name}"


class ServiceDescriptor(BaseModel):
    """A service ``.envie`` file."""

    model_config = {"frozen": True}

    name: str
    description: str = ""
    modules: list[ModuleDescriptor] = Field(default_factory=list)
    depends: list[str] = Field(default_factory=list)
