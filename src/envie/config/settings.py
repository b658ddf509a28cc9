"""Unified settings — CLI flags, env vars, and TOML config in one object.

Priority chain (highest to lowest):
  1. Init kwargs  — CLI flags passed by Click
  2. Env vars     — ``ENVIE_*`` prefix
  3. TOML file    — ``envie.toml`` at the project root
  4. Code defaults — baked into the section models

Uses Pydantic Settings v2 with a custom :class:`TomlSettingsSource`; the
project root comes from the walk-up manifest finder in
:mod:`envie.config.discovery`.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from envie.config.discovery import CONFIG_FILENAME, find_project_root, read_config_file
from envie.config.models import DiscoveryConfig, EnvironmentsConfig, ProvisionerConfig
from envie.domain.errors import ConfigError


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Read settings from the project's ``envie.toml``."""

    def __init__(self, settings_cls: type[BaseSettings], toml_path: Path | None) -> None:
        super().__init__(settings_cls)
        self._data: dict[str, Any] = {}
        if toml_path is not None:
            try:
                self._data = read_config_file(toml_path)
            except ConfigError as exc:
                import click

                raise click.ClickException(exc.message) from exc

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Return ``(value, field_name, value_is_complex)``."""
        val = self._data.get(field_name)
        return val, field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        """Return the full TOML data dict for Pydantic to merge."""
        return self._data


# Thread-local storage for TOML path during construction.
_tls = threading.local()


class EnvieSettings(BaseSettings):
    """Unified settings for one envie invocation.

    Attributes:
        project_root: Directory holding the workspace manifest (or CWD if
            none was found walking up).
        config_path: The ``envie.toml`` that was read, if any.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "ENVIE_",
        "env_nested_delimiter": "__",
    }

    # --- Resolved path ---
    project_root: Path = Field(default_factory=Path.cwd)
    config_path: Path | None = None

    # --- CLI flags ---
    json_output: bool = False
    quiet: bool = False
    verbose: bool = False
    log_json: bool = False

    # --- TOML sections ---
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    provisioner: ProvisionerConfig = Field(default_factory=ProvisionerConfig)
    environments: EnvironmentsConfig = Field(default_factory=EnvironmentsConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Insert TOML source between env vars and defaults."""
        toml_path = getattr(_tls, "toml_path", None)
        return (
            init_settings,
            env_settings,
            TomlSettingsSource(settings_cls, toml_path),
        )

    @classmethod
    def from_cli(
        cls,
        *,
        config_path: str | None = None,
        project_root: Path | None = None,
        **cli_flags: Any,
    ) -> EnvieSettings:
        """Construct settings from a CLI invocation.

        Finds the project root via manifest walk-up (unless *project_root*
        is given), reads ``envie.toml`` from it (or the explicit
        *config_path*), and merges CLI flags as highest-priority overrides.
        """
        resolved_root = project_root.resolve() if project_root else find_project_root()
        if resolved_root is None:
            resolved_root = Path.cwd()

        toml_path: Path | None
        if config_path:
            toml_path = Path(config_path)
        else:
            candidate = resolved_root / CONFIG_FILENAME
            toml_path = candidate if candidate.is_file() else None

        _tls.toml_path = toml_path
        try:
            return cls(
                project_root=resolved_root,
                config_path=toml_path,
                **cli_flags,
            )
        finally:
            _tls.toml_path = None
