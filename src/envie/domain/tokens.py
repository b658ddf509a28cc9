"""Environment tokens: the closed variant behind ``stable.x`` / ``ephemeral`` strings.

Dependency references carry an environment string such as
``stable.sandbox``, ``ephemeral``, ``ephemeral.456`` or a literal
workspace name.  :func:`parse_environment_token` turns that string into
one of four frozen variants exactly once, at descriptor load time, so the
resolver dispatches on type instead of re-checking prefixes.
"""

from __future__ import annotations

from dataclasses import dataclass

from envie.domain.errors import ValidationError

STABLE_PREFIX = "stable."
EPHEMERAL = "ephemeral"
EPHEMERAL_PREFIX = "ephemeral."


@dataclass(frozen=True)
class StableNamed:
    """``stable.<name>`` — a named entry of the stable-environment table."""

    name: str

    def __str__(self) -> str:
        return f"{STABLE_PREFIX}{self.name}"


@dataclass(frozen=True)
class EphemeralCurrent:
    """``ephemeral`` — the workspace the current invocation is bound to."""

    def __str__(self) -> str:
        return EPHEMERAL


@dataclass(frozen=True)
class EphemeralById:
    """``ephemeral.<id>`` — another change's ephemeral workspace."""

    id: str

    def __str__(self) -> str:
        return f"{EPHEMERAL_PREFIX}{self.id}"


@dataclass(frozen=True)
class LiteralWorkspace:
    """Any other string, taken as a workspace name."""

    name: str

    def __str__(self) -> str:
        return self.name


type EnvironmentToken = StableNamed | EphemeralCurrent | EphemeralById | LiteralWorkspace


def parse_environment_token(text: str) -> EnvironmentToken:
    """Parse an environment reference string into its token variant.

    Raises:
        ValidationError: If *text* is blank or a prefixed form has an
            empty name (``stable.`` / ``ephemeral.``).
    """
    raw = text.strip()
    if not raw:
        msg = "Environment reference must not be empty"
        raise ValidationError(msg)

    if raw.startswith(STABLE_PREFIX):
        name = raw.removeprefix(STABLE_PREFIX)
        if not name:
            msg = f"Stable environment reference {text!r} has no environment name"
            raise ValidationError(msg)
        return StableNamed(name)
    if raw == EPHEMERAL:
        return EphemeralCurrent()
    if raw.startswith(EPHEMERAL_PREFIX):
        change_id = raw.removeprefix(EPHEMERAL_PREFIX)
        if not change_id:
            msg = f"Ephemeral environment reference {text!r} has no change id"
            raise ValidationError(msg)
        return EphemeralById(change_id)
    return LiteralWorkspace(raw)
