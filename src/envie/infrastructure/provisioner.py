"""Provisioner adapter — the external engine that applies and destroys units.

:class:`Provisioner` is the protocol the core consumes.
:class:`TerraformProvisioner` implements it by running the ``terraform``
binary in a working directory.  Every failure surfaces as a
:class:`ProvisionerError` carrying the tool's diagnostic text; nothing
here retries or times out.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from envie.domain.errors import ProvisionerError

logger = logging.getLogger(__name__)

DEFAULT_WORKSPACE = "default"


@runtime_checkable
class Provisioner(Protocol):
    """Operations envie needs from the provisioning engine."""

    def init(self, *, upgrade: bool = False) -> None: ...

    def workspace_list(self) -> list[str]: ...

    def workspace_show(self) -> str: ...

    def workspace_select(self, name: str) -> None: ...

    def workspace_new(self, name: str) -> None: ...

    def workspace_delete(self, name: str) -> None: ...

    def apply(self, variables: Mapping[str, str] | None = None) -> None: ...

    def destroy(self, variables: Mapping[str, str] | None = None) -> None: ...

    def outputs(self) -> dict[str, Any]: ...


type ProvisionerFactory = Callable[[Path], Provisioner]


def _var_args(variables: Mapping[str, str] | None) -> list[str]:
    args: list[str] = []
    for key, value in (variables or {}).items():
        args.extend(["-var", f"{key}={value}"])
    return args


class TerraformProvisioner:
    """Run ``terraform`` subcommands in *working_directory*."""

    def __init__(
        self,
        working_directory: Path,
        *,
        binary: str = "terraform",
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.working_directory = working_directory
        self.binary = binary
        self._env = dict(env or {})

    def __repr__(self) -> str:
        return f"TerraformProvisioner({str(self.working_directory)!r})"

    # ------------------------------------------------------------------
    # Provisioner protocol
    # ------------------------------------------------------------------

    def init(self, *, upgrade: bool = False) -> None:
        self._run("init", "-input=false", *(["-upgrade"] if upgrade else []))

    def workspace_list(self) -> list[str]:
        output = self._run("workspace", "list").stdout
        workspaces: list[str] = []
        for line in output.splitlines():
            name = line.strip().lstrip("*").strip()
            if name:
                workspaces.append(name)
        return workspaces

    def workspace_show(self) -> str:
        return self._run("workspace", "show").stdout.strip()

    def workspace_select(self, name: str) -> None:
        self._run("workspace", "select", name)

    def workspace_new(self, name: str) -> None:
        self._run("workspace", "new", name)

    def workspace_delete(self, name: str) -> None:
        self._run("workspace", "delete", name)

    def apply(self, variables: Mapping[str, str] | None = None) -> None:
        self._run("apply", "-auto-approve", "-input=false", *_var_args(variables))

    def destroy(self, variables: Mapping[str, str] | None = None) -> None:
        self._run("destroy", "-auto-approve", "-input=false", *_var_args(variables))

    def outputs(self) -> dict[str, Any]:
        """``terraform output -json`` flattened to ``{name: value}``."""
        raw = self._run("output", "-json").stdout
        try:
            parsed = json.loads(raw or "{}")
        except json.JSONDecodeError as exc:
            msg = f"terraform output returned invalid JSON in {self.working_directory}: {exc}"
            raise ProvisionerError(msg, directory=str(self.working_directory)) from exc
        return {name: entry.get("value") for name, entry in parsed.items()}

    # ------------------------------------------------------------------
    # Subprocess helper
    # ------------------------------------------------------------------

    def _run(self, *args: str) -> subprocess.CompletedProcess[str]:
        command = [self.binary, *args]
        logger.debug("Running %s in %s", " ".join(command), self.working_directory)
        try:
            result = subprocess.run(
                command,
                cwd=self.working_directory,
                env={**os.environ, **self._env},
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            msg = f"Failed to execute {self.binary} {args[0]}: {exc}"
            raise ProvisionerError(msg, command=command) from exc

        if result.returncode != 0:
            stderr = result.stderr.strip()
            msg = f"{self.binary} {args[0]} failed: {stderr}"
            raise ProvisionerError(
                msg,
                command=command,
                returncode=result.returncode,
                directory=str(self.working_directory),
            )
        return result


def terraform_factory(
    *, binary: str = "terraform", env: Mapping[str, str] | None = None
) -> ProvisionerFactory:
    """Factory binding settings so callers only pass a directory."""

    def factory(directory: Path) -> Provisioner:
        return TerraformProvisioner(directory, binary=binary, env=env)

    return factory
