"""Command: combined outputs of a service's deployment plan."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from envie.commands._base import EnvieCommand, plan_options

if TYPE_CHECKING:
    from envie.commands._context import AppContext
    from envie.domain.tokens import EnvironmentToken


@click.command(
    cls=EnvieCommand,
    examples="""\
  envie output -S api --merge-request 123
  envie output -S api --merge-request 123 -o outputs.json
  envie -q output -S api --merge-request 123""",
)
@plan_options
@click.option(
    "-o",
    "--output-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also write the combined outputs to this JSON file.",
)
@click.pass_obj
def output(
    app: AppContext,
    service: str | None,
    change_id: str | None,
    overrides: dict[str, EnvironmentToken],
    output_file: Path | None,
) -> None:
    """Merge outputs of the service and everything it depends on."""
    from envie.services.outputs import OutputService

    app.emit(
        OutputService(app.project).combined(
            service, change_id=change_id, overrides=overrides, output_file=output_file
        )
    )
