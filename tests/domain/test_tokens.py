"""Tests for environment token parsing."""

import pytest

from envie.domain.errors import ValidationError
from envie.domain.tokens import (
    EphemeralById,
    EphemeralCurrent,
    LiteralWorkspace,
    StableNamed,
    parse_environment_token,
)


class TestParseEnvironmentToken:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("stable.sandbox", StableNamed("sandbox")),
            ("ephemeral", EphemeralCurrent()),
            ("ephemeral.456", EphemeralById("456")),
            ("ephemeral.456-auth", EphemeralById("456-auth")),
            ("myapp-789", LiteralWorkspace("myapp-789")),
            ("  stable.prod  ", StableNamed("prod")),
        ],
    )
    def test_variants(self, text: str, expected: object) -> None:
        assert parse_environment_token(text) == expected

    @pytest.mark.parametrize("text", ["", "   ", "stable.", "ephemeral."])
    def test_rejects_empty(self, text: str) -> None:
        with pytest.raises(ValidationError):
            parse_environment_token(text)

    def test_str_round_trips_token_form(self) -> None:
        for text in ("stable.sandbox", "ephemeral", "ephemeral.12", "production"):
            assert str(parse_environment_token(text)) == text

    def test_ephemeral_prefix_without_dot_is_literal(self) -> None:
        assert parse_environment_token("ephemeralish") == LiteralWorkspace("ephemeralish")
