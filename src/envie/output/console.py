"""Rich Console factory and theme for envie output.

Creates Console instances that render to a StringIO buffer, preserving
the ``render_result() -> str`` contract.  In non-TTY environments
(tests, pipes) Rich automatically disables color codes.
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

ENVIE_THEME = Theme(
    {
        "envie.ok": "bold green",
        "envie.error": "bold red",
        "envie.warning": "bold yellow",
        "envie.op": "bold cyan",
        "envie.key": "dim",
        "envie.name": "bold blue",
        "envie.path": "dim",
        "envie.workspace": "magenta",
        "envie.action.deploy": "green",
        "envie.action.reference": "blue",
        "envie.kind.ephemeral": "yellow",
        "envie.kind.stable": "cyan",
    }
)

_ACTION_STYLES: dict[str, str] = {
    "deploy": "envie.action.deploy",
    "reference": "envie.action.reference",
}

_KIND_STYLES: dict[str, str] = {
    "ephemeral": "envie.kind.ephemeral",
    "stable": "envie.kind.stable",
}


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Create a Console that renders to a StringIO buffer.

    Args:
        no_color: Disable ANSI escape codes (used in tests).
        width: Override terminal width (useful for consistent test output).
    """
    return Console(
        file=StringIO(),
        theme=ENVIE_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 120,
    )


def get_output(console: Console) -> str:
    """Extract rendered text from a StringIO-backed Console."""
    assert isinstance(console.file, StringIO)
    return console.file.getvalue()


def style_for_action(action: str) -> str:
    return _ACTION_STYLES.get(action, "")


def style_for_kind(kind: str) -> str:
    return _KIND_STYLES.get(kind, "")
