"""Project root discovery and ``envie.toml`` loading.

Walk-up finder locates the workspace manifest, similar to how git finds
.git/.  Supports the ENVIE_PROJECT_ROOT env var and the -C CLI flag as
overrides.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

from envie.domain.errors import ConfigError

CONFIG_FILENAME = "envie.toml"
ROOT_ENV_VAR = "ENVIE_PROJECT_ROOT"
MANIFEST_FILENAMES: tuple[str, ...] = ("workspace.envie", ".envie.yaml")


def find_project_root(
    start: Path | None = None,
    manifest_names: tuple[str, ...] = MANIFEST_FILENAMES,
) -> Path | None:
    """Walk up from *start* (default: cwd) looking for a workspace manifest.

    Returns the directory holding the manifest, or None if not found.
    Checks ENVIE_PROJECT_ROOT first.
    """
    env_root = os.environ.get(ROOT_ENV_VAR)
    if env_root:
        p = Path(env_root)
        if p.is_dir():
            return p.resolve()
        return None

    current = (start or Path.cwd()).resolve()
    while True:
        if any((current / name).is_file() for name in manifest_names):
            return current
        parent = current.parent
        if parent == current:
            break
        current = parent
    return None


def read_config_file(path: Path) -> dict[str, Any]:
    """Parse an ``envie.toml`` file; a missing file yields ``{}``."""
    if not path.is_file():
        return {}
    raw = path.read_text(encoding="utf-8")
    try:
        return tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in {path}: {exc}"
        raise ConfigError(msg, path=str(path)) from exc

