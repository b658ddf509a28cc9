"""Remote-state link scanner — find cross-module references in ``.tf`` text.

A tolerant, line-oriented heuristic, not an HCL parser.  It tracks three
line states (idle, inside a ``terraform_remote_state`` block, inside that
block's ``config`` map) and records the backend type and key/values each
reference declares, plus which outputs of each reference the text reads.

Diagnostic only: generated backend configuration never comes from here.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from envie.domain.errors import FilesystemError

# data "terraform_remote_state" "network" {
_REFERENCE_START = re.compile(r'data\s+"terraform_remote_state"\s+"([^"]+)"')
# backend = "s3"
_BACKEND_TYPE = re.compile(r'backend\s*=\s*"([^"]+)"')
# config = {   /   config {
_CONFIG_START = re.compile(r"^config\s*=?\s*\{")

DEFAULT_BACKEND_TYPE = "s3"
TERRAFORM_SUFFIX = ".tf"


class ScanState(StrEnum):
    """Line state of the scanner."""

    IDLE = "idle"
    IN_REFERENCE = "in_reference"
    IN_BACKEND_CONFIG = "in_backend_config"


@dataclass(frozen=True)
class RemoteStateLink:
    """A ``terraform_remote_state`` declaration found in configuration text."""

    name: str
    backend_type: str = DEFAULT_BACKEND_TYPE
    backend_config: dict[str, str] = field(default_factory=dict)
    line: int = 0  # 1-based line of the ``data`` keyword
    source: str | None = None  # file path when scanned from disk


@dataclass
class _Pending:
    name: str
    line: int
    backend_type: str | None = None
    config: dict[str, str] = field(default_factory=dict)

    def finish(self, source: str | None) -> RemoteStateLink:
        return RemoteStateLink(
            name=self.name,
            backend_type=self.backend_type or DEFAULT_BACKEND_TYPE,
            backend_config=dict(self.config),
            line=self.line,
            source=source,
        )


def parse_config_line(line: str) -> tuple[str, str] | None:
    """Parse ``key = "value"`` into ``(key, value)``; None if not an assignment."""
    key, sep, value = line.partition("=")
    if not sep:
        return None
    key = key.strip()
    value = value.strip().rstrip(",").strip().strip('"')
    if not key or not re.fullmatch(r"[\w-]+", key):
        return None
    return key, value


def _strip_comment(line: str) -> str:
    for marker in ("#", "//"):
        idx = line.find(marker)
        if idx != -1 and line[:idx].count('"') % 2 == 0:
            line = line[:idx]
    return line.strip()


def scan_content(content: str, *, source: str | None = None) -> list[RemoteStateLink]:
    """Extract every remote-state reference declared in *content*.

    A reference missing its closing brace at end of text is still
    reported.  References with no ``backend`` line default to ``s3``.
    """
    links: list[RemoteStateLink] = []
    state = ScanState.IDLE
    pending: _Pending | None = None

    for lineno, raw_line in enumerate(content.splitlines(), start=1):
        line = _strip_comment(raw_line)
        if not line:
            continue

        start = _REFERENCE_START.search(line)
        if start:
            if pending is not None:
                links.append(pending.finish(source))
            pending = _Pending(name=start.group(1), line=lineno)
            state = ScanState.IN_REFERENCE
            continue

        if state is ScanState.IDLE or pending is None:
            continue

        if state is ScanState.IN_REFERENCE:
            backend = _BACKEND_TYPE.search(line)
            if backend:
                pending.backend_type = backend.group(1)
            elif _CONFIG_START.match(line):
                inline = line.split("{", 1)[1]
                if "}" in inline:
                    # config = { bucket = "x", region = "y" }
                    for part in inline.split("}", 1)[0].split(","):
                        parsed = parse_config_line(part)
                        if parsed:
                            pending.config[parsed[0]] = parsed[1]
                else:
                    state = ScanState.IN_BACKEND_CONFIG
            elif line.startswith("}"):
                links.append(pending.finish(source))
                pending = None
                state = ScanState.IDLE
            continue

        # ScanState.IN_BACKEND_CONFIG
        if line.startswith("}"):
            state = ScanState.IN_REFERENCE
            continue
        parsed = parse_config_line(line)
        if parsed:
            pending.config[parsed[0]] = parsed[1]

    if pending is not None:
        links.append(pending.finish(source))
    return links


def terraform_files(directory: Path) -> list[Path]:
    """``*.tf`` files directly inside *directory*, in name order."""
    if not directory.is_dir():
        return []
    return [
        path
        for path in sorted(directory.iterdir())
        if path.is_file() and path.suffix == TERRAFORM_SUFFIX
    ]


def read_source(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        msg = f"Cannot read {path}: {exc}"
        raise FilesystemError(msg, path=str(path)) from exc


def scan_file(path: Path) -> list[RemoteStateLink]:
    """Scan one ``.tf`` file."""
    return scan_content(read_source(path), source=str(path))


def scan_directory(directory: Path) -> list[RemoteStateLink]:
    """Scan every ``*.tf`` file directly inside *directory*, in name order."""
    links: list[RemoteStateLink] = []
    for path in terraform_files(directory):
        links.extend(scan_file(path))
    return links


def extract_used_outputs(content: str, name: str) -> set[str]:
    """Output names read via ``data.terraform_remote_state.<name>.outputs.<x>``."""
    pattern = re.compile(rf"data\.terraform_remote_state\.{re.escape(name)}\.outputs\.(\w+)")
    return {match.group(1) for match in pattern.finditer(content)}


def find_dead_links(
    content: str,
    links: Iterable[RemoteStateLink] | None = None,
) -> list[str]:
    """Names of references whose outputs *content* never reads.

    *links* defaults to the references declared in *content* itself; pass
    the links of several files to check them against their combined text.
    """
    if links is None:
        links = scan_content(content)
    return [link.name for link in links if not extract_used_outputs(content, link.name)]
