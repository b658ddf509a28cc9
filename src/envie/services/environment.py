"""EnvironmentService — start, destroy and inspect workspaces; resolve environment tokens."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from envie.domain.environments import (
    format_workspace_name,
    strip_project_prefix,
    validate_change_id,
)
from envie.domain.errors import EnvieError, FilesystemError, ValidationError
from envie.domain.tokens import LiteralWorkspace
from envie.infrastructure.provisioner import DEFAULT_WORKSPACE
from envie.services.base import BaseService
from envie.services.result import ServiceResult
from envie.services.telemetry import trace_span, traced

logger = logging.getLogger(__name__)


class EnvironmentService(BaseService):
    """Ephemeral workspace lifecycle plus views over stable environments."""

    @traced
    def list_environments(self) -> ServiceResult:
        """Known ephemeral workspaces plus the configured stable table."""
        op = "env_list"
        try:
            project = self._project.project_name
            current = self._project.current_workspace()
            workspaces = self._project.known_workspaces()
            config = self._project.environment_config
        except EnvieError as exc:
            return ServiceResult.failure(op, exc)

        prefix = f"{project}-"
        ephemeral = [
            {
                "workspace": ws,
                "change_id": strip_project_prefix(project, ws),
                "current": ws == current,
            }
            for ws in workspaces
            if ws.startswith(prefix)
        ]
        stable = [
            {
                "name": name,
                "workspace": env.workspace,
                "backend": env.backend.backend_type,
                "description": env.description,
            }
            for name, env in sorted(config.stable.items())
        ]
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "project": project,
                "current": current,
                "ephemeral": ephemeral,
                "stable": stable,
            },
        )

    @traced
    def current(self) -> ServiceResult:
        """The selected workspace and how it classifies."""
        op = "env_current"
        try:
            workspace = self._project.current_workspace()
            if workspace == DEFAULT_WORKSPACE:
                return ServiceResult(
                    ok=True,
                    op=op,
                    data={"workspace": workspace, "kind": None, "label": None},
                    warnings=["No ephemeral workspace selected"],
                )
            resolved = self._project.resolver(workspace).resolve(LiteralWorkspace(workspace))
        except EnvieError as exc:
            return ServiceResult.failure(op, exc)
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "workspace": resolved.workspace,
                "kind": resolved.kind.value,
                "label": resolved.label,
            },
        )

    @traced
    def resolve(
        self,
        token: str,
        *,
        service: str | None = None,
        module: str | None = None,
        change_id: str | None = None,
    ) -> ServiceResult:
        """Resolve *token*; with a service and module also render its state key.

        Args:
            token: ``stable.<name>``, ``ephemeral``, ``ephemeral.<id>`` or a
                literal workspace name.
            service: Service whose state key to compute.
            module: Module whose state key to compute (requires *service*).
            change_id: Bind ``ephemeral`` to this change's workspace instead
                of the currently selected one.
        """
        op = "env_resolve"
        try:
            if change_id:
                workspace = format_workspace_name(
                    self._project.project_name, validate_change_id(change_id)
                )
            else:
                workspace = self._project.current_workspace()
            resolver = self._project.resolver(workspace)
            resolved = resolver.resolve(token)

            data: dict[str, Any] = {
                "token": token,
                "workspace": resolved.workspace,
                "kind": resolved.kind.value,
                "label": resolved.label,
                "backend": resolved.backend.backend_type,
            }
            if service and module:
                self._project.registry.get_module(f"{service}/{module}")
                data["state_key"] = resolver.generate_state_key(resolved, service, module)
                data["backend_config"] = resolver.generate_backend_config(
                    resolved, service, module
                )
        except EnvieError as exc:
            return ServiceResult.failure(op, exc)
        return ServiceResult(ok=True, op=op, data=data)

    # ------------------------------------------------------------------
    # Workspace lifecycle
    # ------------------------------------------------------------------

    @traced
    def start(self, change_id: str) -> ServiceResult:
        """Create or select the change's workspace in the state directory and apply it.

        Afterwards the workspace is the current one, so ``deploy`` and
        ``output`` work without ``--merge-request`` and other changes can
        reference it as ``ephemeral.<id>``.
        """
        op = "env_start"
        try:
            workspace = format_workspace_name(
                self._project.project_name, validate_change_id(change_id)
            )
            state_dir = self._project.state_dir
            _ensure_dir(state_dir)
            with trace_span(f"start:{workspace}"):
                provisioner = self._project.provisioner(state_dir)
                provisioner.init()
                created = workspace not in provisioner.workspace_list()
                if created:
                    provisioner.workspace_new(workspace)
                else:
                    provisioner.workspace_select(workspace)
                provisioner.apply()
        except EnvieError as exc:
            return ServiceResult.failure(op, exc)

        logger.info("%s ephemeral workspace %s", "Created" if created else "Activated", workspace)
        return ServiceResult(
            ok=True,
            op=op,
            data={"workspace": workspace, "change_id": change_id, "created": created},
        )

    @traced
    def destroy(self, change_id: str | None = None) -> ServiceResult:
        """Destroy an ephemeral workspace and delete it from the state directory.

        Without *change_id* the currently selected workspace is destroyed;
        ``default`` is never destroyed.
        """
        op = "env_destroy"
        try:
            if change_id:
                workspace = format_workspace_name(
                    self._project.project_name, validate_change_id(change_id)
                )
            else:
                workspace = self._project.current_workspace()
            if workspace == DEFAULT_WORKSPACE:
                msg = "No active ephemeral workspace to destroy"
                raise ValidationError(msg, workspace=workspace)
            if workspace not in self._project.known_workspaces():
                msg = f"Ephemeral workspace '{workspace}' does not exist"
                raise ValidationError(msg, workspace=workspace)

            with trace_span(f"destroy:{workspace}"):
                provisioner = self._project.provisioner(self._project.state_dir)
                provisioner.workspace_select(workspace)
                provisioner.destroy()
                provisioner.workspace_select(DEFAULT_WORKSPACE)
                provisioner.workspace_delete(workspace)
        except EnvieError as exc:
            return ServiceResult.failure(op, exc)

        logger.info("Destroyed ephemeral workspace %s", workspace)
        return ServiceResult(ok=True, op=op, data={"workspace": workspace})


def _ensure_dir(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        msg = f"Cannot create state directory {path}: {exc}"
        raise FilesystemError(msg, path=str(path)) from exc
