"""Environment topology — resolve environment tokens to workspaces and backends.

An :class:`EnvironmentResolver` is bound to one invocation: the workspace
the operator is deploying into, the project name, the static
:class:`EnvironmentConfig` (ephemeral backend template + stable table) and
the workspaces the provisioner currently knows about.  Every token
resolves to exactly one :class:`ResolvedEnvironment` or raises
:class:`~envie.domain.errors.ValidationError`.

State keys are a pure function of the resolved environment, service and
module, so the same inputs always address the same state object.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, Field, field_validator

from envie.domain.descriptors import ProjectInfo
from envie.domain.errors import ValidationError
from envie.domain.tokens import (
    EnvironmentToken,
    EphemeralById,
    EphemeralCurrent,
    LiteralWorkspace,
    StableNamed,
    parse_environment_token,
)
from envie.domain.types import EnvironmentKind

logger = logging.getLogger(__name__)

EPHEMERAL_KEY_TEMPLATE = "ephemeral/{workspace}/{service}/{module}/terraform.tfstate"
DEFAULT_STABLE_KEY_PATTERN = "stable/{environment}/{service}/{module}/terraform.tfstate"

# Backend config entries that steer the resolver and are never rendered.
KEY_PATTERN_ENTRY = "key_pattern"
_RESOLVER_ONLY_KEYS = frozenset({KEY_PATTERN_ENTRY})

# {number} or {number}-{suffix}, e.g. 123 or 123-feature
_CHANGE_ID_PATTERN = re.compile(r"^[0-9]+(-[0-9A-Za-z]+)?$")


# ---------------------------------------------------------------------------
# Static configuration (environments.envie)
# ---------------------------------------------------------------------------


class BackendConfig(BaseModel):
    """Storage backend type plus its key/value configuration."""

    model_config = {"frozen": True, "populate_by_name": True}

    backend_type: str = Field(alias="type")
    config: dict[str, str] = Field(default_factory=dict)

    @field_validator("config", mode="before")
    @classmethod
    def _stringify_values(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        result: dict[str, str] = {}
        for key, item in value.items():
            if isinstance(item, bool):
                result[str(key)] = "true" if item else "false"
            else:
                result[str(key)] = str(item)
        return result


class EphemeralConfig(BaseModel):
    """``ephemeral:`` section — naming pattern and backend template."""

    model_config = {"frozen": True}

    naming_pattern: str = "{project}-{id}"
    backend: BackendConfig


class StableEnvironmentConfig(BaseModel):
    """One entry of the ``stable:`` table."""

    model_config = {"frozen": True}

    workspace: str
    backend: BackendConfig
    description: str = ""


class EnvironmentConfig(BaseModel):
    """Root of ``environments.envie``."""

    model_config = {"frozen": True}

    project: ProjectInfo | None = None
    ephemeral: EphemeralConfig
    stable: dict[str, StableEnvironmentConfig] = Field(default_factory=dict)


def default_environment_config() -> EnvironmentConfig:
    """Configuration used when a project ships no ``environments.envie``."""
    return EnvironmentConfig(
        ephemeral=EphemeralConfig(
            backend=BackendConfig(
                backend_type="s3",
                config={"bucket": "terraform-state-ephemeral", "region": "eu-west-1"},
            ),
        ),
    )


# ---------------------------------------------------------------------------
# Resolution result
# ---------------------------------------------------------------------------


class ResolvedEnvironment(BaseModel):
    """A concrete workspace, its classification, and its backend."""

    model_config = {"frozen": True}

    workspace: str
    kind: EnvironmentKind
    environment: str | None = None  # stable environment name
    backend: BackendConfig

    @property
    def is_ephemeral(self) -> bool:
        return self.kind is EnvironmentKind.EPHEMERAL

    @property
    def label(self) -> str:
        """Short classification label: ``ephemeral`` or the stable name."""
        if self.is_ephemeral:
            return EnvironmentKind.EPHEMERAL.value
        return self.environment or self.workspace


# ---------------------------------------------------------------------------
# Change ids / workspace names
# ---------------------------------------------------------------------------


def validate_change_id(change_id: str) -> str:
    """Return *change_id* if it looks like ``123`` or ``123-abc``.

    Raises:
        ValidationError: For any other shape.
    """
    if not _CHANGE_ID_PATTERN.match(change_id):
        msg = (
            f"Invalid change id {change_id!r}: expected {{number}} or "
            "{number}-{suffix}, e.g. 123 or 123-auth"
        )
        raise ValidationError(msg, change_id=change_id)
    return change_id


def format_workspace_name(project_name: str, change_id: str) -> str:
    """Ephemeral workspace name for a change: ``<project>-<id>``."""
    return f"{project_name}-{change_id}"


def strip_project_prefix(project_name: str, workspace: str) -> str:
    """Drop the ``<project>-`` prefix from an ephemeral workspace name."""
    return workspace.removeprefix(f"{project_name}-")


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class EnvironmentResolver:
    """Resolve environment tokens against one invocation's context.

    Args:
        current_workspace: Workspace bound to ``ephemeral``.
        project_name: Prefix of ephemeral workspace names.
        config: Ephemeral backend template and stable table.
        available_workspaces: Workspaces the provisioner knows about;
            ``ephemeral.<id>`` must name one of them.
        allow_backend_fallback: Give a literal workspace that is classified
            stable but absent from the stable table the ephemeral backend
            instead of failing.
    """

    def __init__(
        self,
        current_workspace: str,
        project_name: str,
        config: EnvironmentConfig,
        available_workspaces: Iterable[str] = (),
        *,
        allow_backend_fallback: bool = False,
    ) -> None:
        self.current_workspace = current_workspace
        self.project_name = project_name
        self.config = config
        self.available_workspaces: tuple[str, ...] = tuple(available_workspaces)
        self.allow_backend_fallback = allow_backend_fallback
        self._ephemeral_prefix = f"{project_name}-"

    def resolve(self, reference: EnvironmentToken | str) -> ResolvedEnvironment:
        """Resolve a token (or its string form) to exactly one environment."""
        token = parse_environment_token(reference) if isinstance(reference, str) else reference

        match token:
            case StableNamed(name=name):
                return self._resolve_stable(name)
            case EphemeralCurrent():
                return self._ephemeral(self.current_workspace)
            case EphemeralById(id=change_id):
                return self._resolve_ephemeral_by_id(change_id)
            case LiteralWorkspace(name=name):
                return self._resolve_literal(name)
        msg = f"Unsupported environment token: {token!r}"
        raise ValidationError(msg)

    def _ephemeral(self, workspace: str) -> ResolvedEnvironment:
        return ResolvedEnvironment(
            workspace=workspace,
            kind=EnvironmentKind.EPHEMERAL,
            backend=self.config.ephemeral.backend,
        )

    def _resolve_stable(self, name: str) -> ResolvedEnvironment:
        stable = self.config.stable.get(name)
        if stable is None:
            known = sorted(self.config.stable)
            msg = f"Stable environment '{name}' not found. Available: {known}"
            raise ValidationError(msg, environment=name, available=known)
        return ResolvedEnvironment(
            workspace=stable.workspace,
            kind=EnvironmentKind.STABLE,
            environment=name,
            backend=stable.backend,
        )

    def _resolve_ephemeral_by_id(self, change_id: str) -> ResolvedEnvironment:
        workspace = format_workspace_name(self.project_name, change_id)
        if workspace not in self.available_workspaces:
            available = list(self.available_workspaces)
            msg = f"Ephemeral workspace '{workspace}' does not exist. Available: {available}"
            raise ValidationError(msg, workspace=workspace, available=available)
        return self._ephemeral(workspace)

    def _resolve_literal(self, workspace: str) -> ResolvedEnvironment:
        if workspace.startswith(self._ephemeral_prefix):
            return self._ephemeral(workspace)

        stable = self.config.stable.get(workspace)
        if stable is not None:
            backend = stable.backend
        elif self.allow_backend_fallback:
            logger.warning(
                "Workspace %s is not a configured stable environment; "
                "using the ephemeral backend template",
                workspace,
            )
            backend = self.config.ephemeral.backend
        else:
            known = sorted(self.config.stable)
            msg = (
                f"Workspace '{workspace}' is neither an ephemeral workspace "
                f"('{self._ephemeral_prefix}*') nor a configured stable environment. "
                f"Available: {known}"
            )
            raise ValidationError(msg, workspace=workspace, available=known)

        return ResolvedEnvironment(
            workspace=workspace,
            kind=EnvironmentKind.STABLE,
            environment=workspace,
            backend=backend,
        )

    # ------------------------------------------------------------------
    # State keys and rendered configuration
    # ------------------------------------------------------------------

    def generate_state_key(self, resolved: ResolvedEnvironment, service: str, module: str) -> str:
        """Deterministic state key for (environment, service, module).

        Ephemeral environments use a fixed template.  Stable environments
        use the backend's ``key_pattern`` entry (default
        ``stable/{environment}/{service}/{module}/terraform.tfstate``);
        placeholders are substituted literally.
        """
        if resolved.is_ephemeral:
            return EPHEMERAL_KEY_TEMPLATE.format(
                workspace=resolved.workspace, service=service, module=module
            )

        pattern = resolved.backend.config.get(KEY_PATTERN_ENTRY, DEFAULT_STABLE_KEY_PATTERN)
        return (
            pattern.replace("{environment}", resolved.label)
            .replace("{service}", service)
            .replace("{module}", module)
        )

    def backend_settings(
        self, resolved: ResolvedEnvironment, service: str, module: str
    ) -> dict[str, str]:
        """Backend key/values with ``key`` forced to the computed state key."""
        settings = {
            key: value
            for key, value in resolved.backend.config.items()
            if key not in _RESOLVER_ONLY_KEYS
        }
        settings["key"] = self.generate_state_key(resolved, service, module)
        return dict(sorted(settings.items()))

    def generate_backend_config(
        self, resolved: ResolvedEnvironment, service: str, module: str
    ) -> str:
        """Render a ``terraform { backend ... }`` block for a module."""
        settings = self.backend_settings(resolved, service, module)
        body = "\n".join(f"    {key} = {_hcl_string(value)}" for key, value in settings.items())
        return (
            "terraform {\n"
            f'  backend "{resolved.backend.backend_type}" {{\n'
            f"{body}\n"
            "  }\n"
            "}\n"
        )

    def generate_remote_state(
        self, name: str, resolved: ResolvedEnvironment, service: str, module: str
    ) -> str:
        """Render a ``terraform_remote_state`` data source reading a module's state."""
        settings = self.backend_settings(resolved, service, module)
        body = "\n".join(f"    {key} = {_hcl_string(value)}" for key, value in settings.items())
        return (
            f'data "terraform_remote_state" "{name}" {{\n'
            f'  backend = "{resolved.backend.backend_type}"\n'
            "  config = {\n"
            f"{body}\n"
            "  }\n"
            "}\n"
        )


def _hcl_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'
