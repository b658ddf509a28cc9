"""Commands: deploy and destroy a service with its dependencies."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from envie.commands._base import EnvieCommand, plan_options

if TYPE_CHECKING:
    from envie.commands._context import AppContext
    from envie.domain.tokens import EnvironmentToken


@click.command(
    cls=EnvieCommand,
    examples="""\
  envie deploy --merge-request 123
  envie deploy -S api --merge-request 123 --dry-run
  envie deploy -S api -E database:stable.sandbox
  envie --json deploy -S api --merge-request 123-auth""",
)
@plan_options
@click.option("--dry-run", is_flag=True, help="Show the plan without applying anything.")
@click.pass_obj
def deploy(
    app: AppContext,
    service: str | None,
    change_id: str | None,
    overrides: dict[str, EnvironmentToken],
    dry_run: bool,
) -> None:
    """Deploy a service and its dependencies into an ephemeral workspace."""
    from envie.services.deploy import DeployService

    app.emit(
        DeployService(app.project).deploy(
            service, change_id=change_id, overrides=overrides, dry_run=dry_run
        )
    )


@click.command(
    cls=EnvieCommand,
    examples="""\
  envie destroy --merge-request 123
  envie destroy -S api --merge-request 123 --dry-run""",
)
@plan_options
@click.option("--dry-run", is_flag=True, help="Show what would be destroyed.")
@click.pass_obj
def destroy(
    app: AppContext,
    service: str | None,
    change_id: str | None,
    overrides: dict[str, EnvironmentToken],
    dry_run: bool,
) -> None:
    """Destroy a service's ephemeral deployment in reverse order."""
    from envie.services.deploy import DeployService

    app.emit(
        DeployService(app.project).destroy(
            service, change_id=change_id, overrides=overrides, dry_run=dry_run
        )
    )
