"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, ``envie.toml`` only contains
overrides.  A project needs no ``envie.toml`` at all.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

# --- envie.toml sections ---


class DiscoveryConfig(BaseModel):
    """[discovery] section."""

    model_config = {"frozen": True}

    max_depth: int = 3
    descriptor_name: str = ".envie"
    manifest_names: tuple[str, ...] = ("workspace.envie", ".envie.yaml")


class ProvisionerConfig(BaseModel):
    """[provisioner] section."""

    model_config = {"frozen": True}

    binary: str = "terraform"
    env: dict[str, str] = Field(default_factory=lambda: {"GODEBUG": "asyncpreemptoff=1"})
    state_dir: str = ".envie"
    backend_filename: str = "envie_backend.tf"
    remote_state_filename: str = "envie_remote_state.tf"


class EnvironmentsConfig(BaseModel):
    """[environments] section."""

    model_config = {"frozen": True}

    file: str = "environments.envie"
    allow_backend_fallback: bool = False
    ephemeral_marker: str = "dev"

