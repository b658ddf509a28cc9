"""Command: show discovered services and their dependency order."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from envie.commands._base import EnvieCommand
from envie.services.show import ShowService

if TYPE_CHECKING:
    from envie.commands._context import AppContext


@click.command(
    cls=EnvieCommand,
    examples="""\
  envie show
  envie show api
  envie show --graph
  envie -v show api
  envie --json show""",
)
@click.argument("service", required=False)
@click.option("--graph", "as_graph", is_flag=True, help="Show the whole dependency graph.")
@click.pass_obj
def show(app: AppContext, service: str | None, as_graph: bool) -> None:
    """List services, or describe SERVICE's modules and ordering."""
    if as_graph and service:
        raise click.UsageError("--graph takes no SERVICE argument")
    svc = ShowService(app.project)
    if as_graph:
        app.emit(svc.graph_view())
    elif service:
        app.emit(svc.show_service(service))
    else:
        app.emit(svc.list_services())
