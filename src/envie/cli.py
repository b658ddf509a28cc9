"""Root CLI group for envie with global flags and command registration."""

from __future__ import annotations

from pathlib import Path

import click

from envie import __version__
from envie.commands import register_commands
from envie.commands._context import AppContext
from envie.config.settings import EnvieSettings


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="envie")
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output.")
@click.option("-q", "--quiet", is_flag=True, help="Minimal output.")
@click.option("-v", "--verbose", is_flag=True, help="Detailed output with debug info.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.option(
    "-C",
    "--project-root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Project root (default: walk up from the cwd to the workspace manifest).",
)
@click.option("-c", "--config", "config_path", default=None, help="Override config file path.")
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    quiet: bool,
    verbose: bool,
    log_json: bool,
    project_root: Path | None,
    config_path: str | None,
) -> None:
    """envie — service dependency and environment topology tool."""
    ctx.ensure_object(dict)
    settings = EnvieSettings.from_cli(
        config_path=config_path,
        project_root=project_root,
        json_output=json_output,
        quiet=quiet,
        verbose=verbose,
        log_json=log_json,
    )
    ctx.obj = AppContext(settings)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli)
