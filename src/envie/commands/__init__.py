"""Subcommand modules for envie.

Provides register_commands() which uses deferred imports to keep
``envie --help`` fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register the ``env`` group and the standalone commands on the root group."""
    # --- Groups ---
    from envie.commands.env import env

    cli.add_command(env)

    # --- Standalone commands ---
    from envie.commands.deploy import deploy, destroy
    from envie.commands.output import output
    from envie.commands.scan import scan
    from envie.commands.show import show

    cli.add_command(deploy)
    cli.add_command(destroy)
    cli.add_command(output)
    cli.add_command(show)
    cli.add_command(scan)
