"""DeployService — plan, apply and destroy a service with its dependencies.

Planning expands the service-level :class:`DeploymentPlan` into one
:class:`PlanStep` per module.  Each module dependency reference is
resolved to an environment (honouring ``-E service:env`` overrides) and a
state key.  A module outside the target service is only *referenced* when
every reference to it points at another workspace (a stable environment
or another change's ephemeral workspace); otherwise it is deployed into
the current workspace alongside the target.

Applying is sequential in plan order: write the generated backend and
remote-state files, ``init``, select or create the workspace, ``apply``.
The first provisioner failure stops the run; units already applied stay
applied.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from envie.domain.environments import (
    EnvironmentResolver,
    format_workspace_name,
    validate_change_id,
)
from envie.domain.errors import EnvieError, FilesystemError, ValidationError
from envie.domain.plan import DependencyBinding, PlanStep
from envie.domain.tokens import EnvironmentToken, EphemeralCurrent
from envie.domain.types import StepAction
from envie.infrastructure.provisioner import DEFAULT_WORKSPACE
from envie.infrastructure.registry import DiscoveredModule
from envie.services.base import BaseService, parse_overrides
from envie.services.result import ServiceResult
from envie.services.telemetry import get_current_span, trace_span, traced

if TYPE_CHECKING:
    from envie.infrastructure.project import Project

logger = logging.getLogger(__name__)

_NON_IDENTIFIER = re.compile(r"[^0-9A-Za-z_]")

GENERATED_HEADER = "# Generated by envie. Do not edit.\n"


def remote_state_name(service: str, module: str) -> str:
    """Data source name for a module's remote state: ``<service>_<module>``."""
    return _NON_IDENTIFIER.sub("_", f"{service}_{module}")


class PlanBuilder:
    """Expand a service's deployment plan into per-module steps."""

    def __init__(self, project: Project) -> None:
        self._project = project
        self._resolvers: dict[str, EnvironmentResolver] = {}

    def workspace_for(self, change_id: str | None) -> str:
        """Ephemeral workspace of *change_id*, or the currently selected one."""
        if change_id:
            validate_change_id(change_id)
            return format_workspace_name(self._project.project_name, change_id)
        current = self._project.current_workspace()
        if current == DEFAULT_WORKSPACE:
            msg = "No ephemeral workspace selected; pass --merge-request <id>"
            raise ValidationError(msg, workspace=current)
        return current

    def resolver(self, workspace: str) -> EnvironmentResolver:
        if workspace not in self._resolvers:
            self._resolvers[workspace] = self._project.resolver(workspace)
        return self._resolvers[workspace]

    def build(
        self,
        target: str,
        workspace: str,
        overrides: Mapping[str, EnvironmentToken],
    ) -> list[PlanStep]:
        """Steps for *target* in deployment order.

        Raises:
            ValidationError: Unknown service or environment.
            DependencyError: Unresolvable reference or a cycle.
        """
        graph = self._project.graph
        resolver = self.resolver(workspace)
        plan = graph.resolve(target)

        ordered: list[DiscoveredModule] = []
        bindings: dict[str, tuple[DependencyBinding, ...]] = {}
        for service in plan.services:
            for module in graph.module_order(service):
                ordered.append(module)
                bindings[module.key] = tuple(
                    self._bind(module, ref.path, ref.token, overrides, resolver)
                    for ref in module.descriptor.depends
                )

        references: dict[str, list[DependencyBinding]] = {}
        for module_bindings in bindings.values():
            for binding in module_bindings:
                references.setdefault(f"{binding.service}/{binding.module}", []).append(binding)

        own = resolver.resolve(EphemeralCurrent())
        steps: list[PlanStep] = []
        for module in ordered:
            incoming = references.get(module.key, [])
            referenced_elsewhere = (
                module.service != target
                and bool(incoming)
                and all(b.workspace != workspace for b in incoming)
            )
            if referenced_elsewhere:
                first = incoming[0]
                action, step_workspace, state_key = (
                    StepAction.REFERENCE,
                    first.workspace,
                    first.state_key,
                )
            else:
                action, step_workspace, state_key = (
                    StepAction.DEPLOY,
                    workspace,
                    resolver.generate_state_key(own, module.service, module.name),
                )
            steps.append(
                PlanStep(
                    service=module.service,
                    module=module.name,
                    path=str(module.path),
                    action=action,
                    workspace=step_workspace,
                    state_key=state_key,
                    bindings=bindings[module.key],
                )
            )
        logger.debug("Planned %d steps for %s in %s", len(steps), target, workspace)
        return steps

    def _bind(
        self,
        module: DiscoveredModule,
        reference: str,
        declared: EnvironmentToken,
        overrides: Mapping[str, EnvironmentToken],
        resolver: EnvironmentResolver,
    ) -> DependencyBinding:
        dependency = self._project.registry.resolve_module_reference(reference, module)
        chosen = overrides.get(dependency.key) or overrides.get(dependency.service) or declared
        if chosen != declared:
            logger.debug(
                "Overriding %s environment %s -> %s", dependency.key, declared, chosen
            )
        resolved = resolver.resolve(chosen)
        return DependencyBinding(
            reference=reference,
            environment=str(chosen),
            token=chosen,
            service=dependency.service,
            module=dependency.name,
            workspace=resolved.workspace,
            kind=resolved.kind,
            label=resolved.label,
            state_key=resolver.generate_state_key(resolved, dependency.service, dependency.name),
        )


def _plan_data(target: str, workspace: str, steps: list[PlanStep]) -> dict[str, Any]:
    return {
        "service": target,
        "workspace": workspace,
        "steps": [step.model_dump(mode="json") for step in steps],
    }


class DeployService(BaseService):
    """Plans, applies and destroys services."""

    @traced
    def plan(
        self,
        service: str | None = None,
        *,
        change_id: str | None = None,
        overrides: Mapping[str, str | EnvironmentToken] | None = None,
    ) -> ServiceResult:
        """Resolve the deployment plan without touching the provisioner."""
        op = "plan"
        try:
            builder = PlanBuilder(self._project)
            target = self._target_service(service)
            workspace = builder.workspace_for(change_id)
            steps = builder.build(target, workspace, parse_overrides(overrides or {}))
        except EnvieError as exc:
            return ServiceResult.failure(op, exc)
        return ServiceResult(ok=True, op=op, data=_plan_data(target, workspace, steps))

    @traced
    def deploy(
        self,
        service: str | None = None,
        *,
        change_id: str | None = None,
        overrides: Mapping[str, str | EnvironmentToken] | None = None,
        dry_run: bool = False,
    ) -> ServiceResult:
        """Apply every DEPLOY step in plan order."""
        op = "deploy"
        try:
            builder = PlanBuilder(self._project)
            target = self._target_service(service)
            workspace = builder.workspace_for(change_id)
            steps = builder.build(target, workspace, parse_overrides(overrides or {}))
        except EnvieError as exc:
            return ServiceResult.failure(op, exc)

        data = _plan_data(target, workspace, steps)
        data["dry_run"] = dry_run
        if dry_run:
            return ServiceResult(ok=True, op=op, data=data)

        resolver = builder.resolver(workspace)
        applied: list[str] = []
        data["applied"] = applied
        data["referenced"] = [s.component for s in steps if s.action is StepAction.REFERENCE]
        for step in steps:
            if step.action is not StepAction.DEPLOY:
                continue
            try:
                self._apply_step(step, resolver)
            except EnvieError as exc:
                logger.error("Deploy of %s stopped at %s: %s", target, step.component, exc.message)
                return ServiceResult.failure(op, exc, data=data)
            applied.append(step.component)

        span = get_current_span()
        if span:
            span.annotate("applied", len(applied))
        return ServiceResult(ok=True, op=op, data=data)

    @traced
    def destroy(
        self,
        service: str | None = None,
        *,
        change_id: str | None = None,
        overrides: Mapping[str, str | EnvironmentToken] | None = None,
        dry_run: bool = False,
    ) -> ServiceResult:
        """Destroy the plan's ephemeral units in reverse order.

        Referenced units are never touched; modules with nothing deployed
        in the workspace are skipped with a warning.
        """
        op = "destroy"
        try:
            builder = PlanBuilder(self._project)
            target = self._target_service(service)
            workspace = builder.workspace_for(change_id)
            steps = builder.build(target, workspace, parse_overrides(overrides or {}))
        except EnvieError as exc:
            return ServiceResult.failure(op, exc)

        order = [s for s in reversed(steps) if s.action is StepAction.DEPLOY]
        data = _plan_data(target, workspace, list(reversed(steps)))
        data["dry_run"] = dry_run
        if dry_run:
            return ServiceResult(ok=True, op=op, data=data)

        destroyed: list[str] = []
        warnings: list[str] = []
        data["destroyed"] = destroyed
        for step in order:
            try:
                if self._destroy_step(step):
                    destroyed.append(step.component)
                else:
                    warnings.append(f"Nothing deployed for {step.component} in {step.workspace}")
            except EnvieError as exc:
                logger.error("Destroy of %s stopped at %s: %s", target, step.component, exc.message)
                return ServiceResult.failure(op, exc, data=data, warnings=warnings)
        return ServiceResult(ok=True, op=op, data=data, warnings=warnings)

    # ------------------------------------------------------------------
    # Provisioner steps
    # ------------------------------------------------------------------

    def _apply_step(self, step: PlanStep, resolver: EnvironmentResolver) -> None:
        directory = Path(step.path)
        if not directory.is_dir():
            msg = f"Module directory {directory} for {step.component} does not exist"
            raise FilesystemError(msg, path=str(directory))

        settings = self._project.settings.provisioner
        own = resolver.resolve(EphemeralCurrent())
        _write_generated(
            directory / settings.backend_filename,
            resolver.generate_backend_config(own, step.service, step.module),
        )
        remote_state = directory / settings.remote_state_filename
        if step.bindings:
            blocks = [
                resolver.generate_remote_state(
                    remote_state_name(b.service, b.module),
                    resolver.resolve(b.token),
                    b.service,
                    b.module,
                )
                for b in step.bindings
            ]
            _write_generated(remote_state, "\n".join(blocks))
        elif remote_state.is_file():
            remote_state.unlink()

        with trace_span(f"apply:{step.component}") as span:
            provisioner = self._project.provisioner(directory)
            provisioner.init()
            if step.workspace in provisioner.workspace_list():
                provisioner.workspace_select(step.workspace)
            else:
                provisioner.workspace_new(step.workspace)
            provisioner.apply()
            if span:
                span.annotate("workspace", step.workspace)
        logger.info("Applied %s in %s", step.component, step.workspace)

    def _destroy_step(self, step: PlanStep) -> bool:
        directory = Path(step.path)
        if not directory.is_dir():
            logger.warning("Module directory %s missing; skipping destroy", directory)
            return False

        with trace_span(f"destroy:{step.component}"):
            provisioner = self._project.provisioner(directory)
            if step.workspace not in provisioner.workspace_list():
                logger.warning("Workspace %s not found for %s", step.workspace, step.component)
                return False
            provisioner.workspace_select(step.workspace)
            provisioner.destroy()
            provisioner.workspace_select(DEFAULT_WORKSPACE)
            provisioner.workspace_delete(step.workspace)
        logger.info("Destroyed %s in %s", step.component, step.workspace)
        return True


def _write_generated(path: Path, content: str) -> None:
    try:
        path.write_text(GENERATED_HEADER + content, encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot write {path}: {exc}"
        raise FilesystemError(msg, path=str(path)) from exc

