"""Command group: inspect and resolve environments."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from envie.commands._base import EnvieGroup
from envie.services.environment import EnvironmentService

if TYPE_CHECKING:
    from envie.commands._context import AppContext

_ENV_EXAMPLES = """\
  envie env start 123
  envie env list
  envie env current
  envie env resolve stable.sandbox
  envie env resolve ephemeral -S api -m lambda --merge-request 123"""


@click.group(cls=EnvieGroup, examples=_ENV_EXAMPLES)
@click.pass_obj
def env(app: AppContext) -> None:
    """Manage ephemeral workspaces and inspect stable environments."""


@env.command(
    "list",
    examples="""\
  envie env list
  envie --json env list""",
)
@click.pass_obj
def list_cmd(app: AppContext) -> None:
    """List stable environments and known ephemeral workspaces."""
    app.emit(EnvironmentService(app.project).list_environments())


@env.command(
    examples="""\
  envie env current
  envie -q env current"""
)
@click.pass_obj
def current(app: AppContext) -> None:
    """Show the selected workspace and its classification."""
    app.emit(EnvironmentService(app.project).current())


@env.command(
    examples="""\
  envie env resolve stable.sandbox
  envie env resolve ephemeral.456
  envie env resolve ephemeral -S api -m lambda --merge-request 123
  envie -v env resolve stable.prod -S database -m dynamodb"""
)
@click.argument("token")
@click.option("-S", "--service", default=None, help="Service for the state key.")
@click.option("-m", "--module", default=None, help="Module for the state key.")
@click.option("--merge-request", "change_id", default=None, metavar="ID", help="Change id.")
@click.pass_obj
def resolve(
    app: AppContext,
    token: str,
    service: str | None,
    module: str | None,
    change_id: str | None,
) -> None:
    """Resolve an environment TOKEN to a workspace (and state key)."""
    if bool(service) != bool(module):
        raise click.UsageError("--service and --module must be given together")
    app.emit(
        EnvironmentService(app.project).resolve(
            token, service=service, module=module, change_id=change_id
        )
    )


@env.command(
    examples="""\
  envie env start 123
  envie env start 123-auth
  envie --json env start 42"""
)
@click.argument("change_id", metavar="ID")
@click.pass_obj
def start(app: AppContext, change_id: str) -> None:
    """Create (or activate) the ephemeral workspace for change ID."""
    app.emit(EnvironmentService(app.project).start(change_id))


@env.command(
    examples="""\
  envie env destroy 123
  envie env destroy"""
)
@click.argument("change_id", metavar="[ID]", required=False)
@click.pass_obj
def destroy(app: AppContext, change_id: str | None) -> None:
    """Destroy change ID's ephemeral workspace (default: the current one)."""
    app.emit(EnvironmentService(app.project).destroy(change_id))
