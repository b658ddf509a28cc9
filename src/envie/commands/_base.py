"""Custom Click base classes with --examples support.

Provides EnvieCommand and EnvieGroup that accept an ``examples`` parameter.
When ``--examples`` is passed, the command prints usage examples and exits.
This keeps ``--help`` concise while making examples available on demand.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import click

if TYPE_CHECKING:
    from envie.domain.tokens import EnvironmentToken


def _add_examples_option(cmd: click.Command | click.Group, examples: str) -> None:
    """Attach an eager ``--examples`` flag to a Click command or group."""

    def show_examples(ctx: click.Context, _param: click.Parameter, value: bool) -> None:
        if not value:
            return
        click.echo(f"Examples for '{ctx.command_path}':\n")
        click.echo(examples)
        ctx.exit(0)

    cmd.params.append(
        click.Option(
            ["--examples"],
            is_flag=True,
            expose_value=False,
            is_eager=True,
            callback=show_examples,
            help="Show usage examples.",
        )
    )


class EnvieCommand(click.Command):
    """Click Command subclass that supports an ``--examples`` flag."""

    def __init__(self, *args: Any, examples: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.examples = examples
        if examples:
            _add_examples_option(self, examples)


class EnvieGroup(click.Group):
    """Click Group subclass that supports an ``--examples`` flag.

    Sets ``command_class = EnvieCommand`` so all subcommands automatically
    accept the ``examples`` parameter without explicit ``cls=`` each time.
    """

    command_class = EnvieCommand

    def __init__(self, *args: Any, examples: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.examples = examples
        if examples:
            _add_examples_option(self, examples)


# ---------------------------------------------------------------------------
# Shared options
# ---------------------------------------------------------------------------


def _parse_overrides(
    _ctx: click.Context, _param: click.Parameter, value: tuple[str, ...]
) -> dict[str, EnvironmentToken]:
    from envie.domain.errors import ValidationError
    from envie.services.base import parse_overrides

    try:
        return parse_overrides(value)
    except ValidationError as exc:
        raise click.BadParameter(exc.message) from exc


def plan_options(func: Any) -> Any:
    """``-S/--service``, ``--merge-request`` and ``-E/--environment``."""
    func = click.option(
        "-E",
        "--environment",
        "overrides",
        multiple=True,
        metavar="SERVICE:ENV",
        callback=_parse_overrides,
        help="Read SERVICE's state from ENV instead of the declared environment.",
    )(func)
    func = click.option(
        "--merge-request",
        "change_id",
        default=None,
        metavar="ID",
        help="Change id selecting the ephemeral workspace (<project>-<ID>).",
    )(func)
    func = click.option(
        "-S",
        "--service",
        default=None,
        help="Target service (default: the service containing the cwd).",
    )(func)
    return func
