"""Command: report remote-state references in module sources."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from envie.commands._base import EnvieCommand

if TYPE_CHECKING:
    from envie.commands._context import AppContext


@click.command(
    cls=EnvieCommand,
    examples="""\
  envie scan
  envie scan -S api
  envie -q scan""",
)
@click.option("-S", "--service", default=None, help="Only scan this service's modules.")
@click.pass_obj
def scan(app: AppContext, service: str | None) -> None:
    """Find terraform_remote_state references and flag unused ones."""
    from envie.services.scan import ScanService

    app.emit(ScanService(app.project).scan(service))
