"""Output aggregation — combine provisioner outputs across a plan.

A dependency token is ``component:environment``.  The ephemeral marker
(``dev`` by default) selects the component's temporary deployment; any
other environment selects the stable deployment of the component's base
service.  Stable pairs are queried once each, ephemeral components once
each, and the results are merged stable group first, ephemeral group
second, later keys overwriting earlier ones.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from envie.domain.errors import EnvieError, FilesystemError, ValidationError
from envie.domain.plan import EPHEMERAL_MARKER, dependency_token
from envie.domain.tokens import EnvironmentToken
from envie.domain.types import EnvironmentKind, StepAction
from envie.infrastructure.provisioner import ProvisionerFactory
from envie.services.base import BaseService, parse_overrides
from envie.services.deploy import PlanBuilder
from envie.services.result import ServiceResult
from envie.services.telemetry import trace_span, traced

logger = logging.getLogger(__name__)

STABLE_DEPLOYMENTS_DIR = "stable_deployments"


@dataclass(frozen=True)
class OutputLocation:
    """Where one deployment's outputs live: a directory and its workspace."""

    directory: Path
    workspace: str


type Locator = Callable[[str, str], OutputLocation]


def parse_dependency_token(token: str) -> tuple[str, str]:
    """Split ``component:environment``.

    Raises:
        ValidationError: Unless the token has exactly one ``:`` with both
            sides non-empty.
    """
    parts = token.split(":")
    if len(parts) != 2 or not all(parts):
        msg = f"Malformed dependency token '{token}': expected COMPONENT:ENVIRONMENT"
        raise ValidationError(msg, token=token)
    return parts[0], parts[1]


def merge_outputs(target: dict[str, Any], new: Mapping[str, Any]) -> dict[str, Any]:
    """Merge *new* into *target*; keys from *new* win."""
    target.update(new)
    return target


class OutputAggregator:
    """Query and merge outputs for a sequence of dependency tokens.

    Args:
        locate: Maps ``(component, environment)`` to an
            :class:`OutputLocation`.  Called with the base service for
            stable pairs and the full component for ephemeral ones.
        provisioner_factory: Builds a provisioner for a directory.
        ephemeral_marker: Environment label meaning "temporary deployment".
    """

    def __init__(
        self,
        locate: Locator,
        provisioner_factory: ProvisionerFactory,
        *,
        ephemeral_marker: str = EPHEMERAL_MARKER,
    ) -> None:
        self._locate = locate
        self._provisioner_factory = provisioner_factory
        self.ephemeral_marker = ephemeral_marker
        self.warnings: list[str] = []

    def combine(self, tokens: Iterable[str]) -> dict[str, Any]:
        """Combined outputs of every token, stable group first."""
        stable: list[tuple[str, str]] = []
        ephemeral: list[str] = []
        for token in tokens:
            component, environment = parse_dependency_token(token)
            if environment == self.ephemeral_marker:
                if component not in ephemeral:
                    ephemeral.append(component)
                continue
            pair = (component.split("/", 1)[0], environment)
            if pair not in stable:
                stable.append(pair)

        combined: dict[str, Any] = {}
        for service, environment in stable:
            merge_outputs(combined, self._query(service, environment))
        for component in ephemeral:
            merge_outputs(combined, self._query(component, self.ephemeral_marker))
        return combined

    def _query(self, component: str, environment: str) -> dict[str, Any]:
        location = self._locate(component, environment)
        if not location.directory.is_dir():
            warning = (
                f"Output directory {location.directory} for {component}:{environment} not found"
            )
            logger.warning(warning)
            self.warnings.append(warning)
            return {}
        with trace_span(f"outputs:{component}:{environment}") as span:
            provisioner = self._provisioner_factory(location.directory)
            provisioner.workspace_select(location.workspace)
            outputs = provisioner.outputs()
            if span:
                span.annotate("count", len(outputs))
        logger.debug("Read %d outputs for %s:%s", len(outputs), component, environment)
        return outputs


class OutputService(BaseService):
    """Combined outputs for a service's deployment plan."""

    @traced
    def combined(
        self,
        service: str | None = None,
        *,
        change_id: str | None = None,
        overrides: Mapping[str, str | EnvironmentToken] | None = None,
        output_file: Path | None = None,
    ) -> ServiceResult:
        op = "output"
        try:
            builder = PlanBuilder(self._project)
            target = self._target_service(service)
            workspace = builder.workspace_for(change_id)
            steps = builder.build(target, workspace, parse_overrides(overrides or {}))
        except EnvieError as exc:
            return ServiceResult.failure(op, exc)

        marker = self._project.settings.environments.ephemeral_marker
        tokens: list[str] = []
        for step in steps:
            if step.action is StepAction.DEPLOY:
                own = dependency_token(step.component, marker)
                if own not in tokens:
                    tokens.append(own)
            for binding in step.bindings:
                if binding.kind is EnvironmentKind.STABLE:
                    token = dependency_token(f"{binding.service}/{binding.module}", binding.label)
                elif binding.workspace == workspace:
                    token = dependency_token(f"{binding.service}/{binding.module}", marker)
                else:
                    logger.debug(
                        "Skipping outputs of %s/%s in foreign workspace %s",
                        binding.service,
                        binding.module,
                        binding.workspace,
                    )
                    continue
                if token not in tokens:
                    tokens.append(token)

        registry = self._project.registry

        def locate(component: str, environment: str) -> OutputLocation:
            if environment == marker:
                return OutputLocation(registry.get_module(component).path, workspace)
            service_path = registry.get_service(component).path
            stable_dir = service_path / STABLE_DEPLOYMENTS_DIR
            directory = stable_dir if stable_dir.is_dir() else service_path
            stable = self._project.environment_config.stable.get(environment)
            return OutputLocation(directory, stable.workspace if stable else environment)

        aggregator = OutputAggregator(
            locate,
            self._project.provisioner,
            ephemeral_marker=marker,
        )
        try:
            outputs = aggregator.combine(tokens)
            if output_file is not None:
                _write_json(output_file, outputs)
        except EnvieError as exc:
            return ServiceResult.failure(op, exc, warnings=aggregator.warnings)

        data: dict[str, Any] = {
            "service": target,
            "workspace": workspace,
            "tokens": tokens,
            "outputs": outputs,
        }
        if output_file is not None:
            data["output_file"] = str(output_file)
        return ServiceResult(ok=True, op=op, data=data, warnings=aggregator.warnings)


def _write_json(path: Path, outputs: Mapping[str, Any]) -> None:
    try:
        path.write_text(json.dumps(outputs, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot write outputs to {path}: {exc}"
        raise FilesystemError(msg, path=str(path)) from exc
