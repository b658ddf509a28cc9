"""BaseService — foundation for all envie services.

Every service receives a :class:`Project` at construction time. The
Project provides the registry, the dependency graph, environment
resolution and provisioners; services never touch settings directly.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from envie.domain.errors import ValidationError
from envie.domain.tokens import EnvironmentToken, parse_environment_token

if TYPE_CHECKING:
    from envie.infrastructure.project import Project

logger = logging.getLogger(__name__)


class BaseService:
    """Base for all service-layer classes.

    Usage::

        class ShowService(BaseService):
            def show(self, ...) -> ServiceResult:
                registry = self._project.registry
                ...
    """

    def __init__(self, project: Project) -> None:
        self._project = project

    def _target_service(self, service: str | None) -> str:
        """Name of *service*, or of the service owning the working directory."""
        registry = self._project.registry
        if service:
            return registry.get_service(service).name
        found = registry.find_service_by_path(Path.cwd())
        if found is None:
            msg = "No service given and the current directory is not inside a service"
            raise ValidationError(msg, cwd=str(Path.cwd()))
        return found.name


def parse_overrides(
    entries: Mapping[str, str | EnvironmentToken] | Sequence[str],
) -> dict[str, EnvironmentToken]:
    """Parse ``service:environment`` override entries into parsed tokens.

    ``default:`` entries are ignored; a malformed entry or environment token
    is a :class:`ValidationError`.  Values that are already tokens pass
    through unchanged.
    """
    pairs: list[tuple[str, str | EnvironmentToken]] = []
    if isinstance(entries, Mapping):
        pairs.extend(entries.items())
    else:
        for entry in entries:
            name, sep, env = entry.partition(":")
            if not sep or not name or not env:
                msg = f"Invalid environment override '{entry}': expected SERVICE:ENVIRONMENT"
                raise ValidationError(msg, entry=entry)
            pairs.append((name, env))

    overrides: dict[str, EnvironmentToken] = {}
    for name, env in pairs:
        if name == "default":
            logger.debug("Ignoring default environment override %s", env)
            continue
        overrides[name] = parse_environment_token(env) if isinstance(env, str) else env
    return overrides
