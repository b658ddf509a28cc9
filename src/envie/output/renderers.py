"""Operation-specific Rich renderers for ServiceResult.

Each renderer writes to a Rich Console (backed by StringIO).  The caller
extracts the rendered text via ``get_output(console)``.

Renderers are dispatched by ``result.op`` in :func:`render_result`.
Unknown ops fall through to a generic key-value renderer.
"""

from __future__ import annotations

import json as _json
from typing import TYPE_CHECKING, Any

from rich.table import Table
from rich.text import Text

from envie.output.console import create_console, get_output, style_for_action, style_for_kind

if TYPE_CHECKING:
    from rich.console import Console

    from envie.services.result import ServiceResult


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich.

    Returns plain text (no ANSI) when Rich detects no terminal,
    which is the case inside Click's CliRunner and piped output.
    """
    console = create_console()

    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)

    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Render minimal output for ``--quiet`` mode."""
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op}: {msg}"

    d = result.data
    if result.op in ("plan", "deploy", "destroy"):
        return "\n".join(f"{s['service']}/{s['module']}" for s in d.get("steps", []))
    if result.op == "output":
        return "\n".join(f"{k}={_scalar(v)}" for k, v in d.get("outputs", {}).items())
    if result.op == "env_list":
        return "\n".join(item["workspace"] for item in d.get("ephemeral", []))
    if result.op in ("env_current", "env_resolve", "env_start", "env_destroy"):
        return str(d.get("workspace", ""))
    if result.op == "show_graph":
        return "\n".join(f"{source} -> {target}" for source, target in d.get("edges", []))
    if result.op == "scan":
        return "\n".join(
            f"{item['module']}:{name}" for item in d.get("items", []) for name in item["dead"]
        )

    items = d.get("items")
    if items and isinstance(items, list):
        return "\n".join(
            str(item["name"]) for item in items if isinstance(item, dict) and "name" in item
        )

    return f"OK: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _scalar(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return _json.dumps(value, separators=(",", ":"), sort_keys=True)
    return str(value)


def _status_line(console: Console, result: ServiceResult) -> None:
    """Print the OK status line."""
    label = Text("OK", style="envie.ok")
    op = Text(f"  {result.op}", style="envie.op")
    console.print(label, op, end="")
    console.print()


def _field(console: Console, key: str, value: Any) -> None:
    """Print a single indented key-value field."""
    k = Text(f"  {key}: ", style="envie.key")
    if key in ("service", "name"):
        v = Text(str(value), style="envie.name")
    elif key in ("path", "root", "output_file"):
        v = Text(str(value), style="envie.path")
    elif key == "workspace":
        v = Text(str(value), style="envie.workspace")
    elif key == "kind":
        v = Text(str(value), style=style_for_kind(str(value)))
    else:
        v = Text(_scalar(value))
    console.print(k, v, end="")
    console.print()


def _render_meta(console: Console, result: ServiceResult) -> None:
    """Print meta block including telemetry span tree (verbose only)."""
    if not result.meta:
        return

    console.print()
    console.print(Text("  meta:", style="dim"))

    for k, v in result.meta.items():
        if k == "telemetry":
            _render_telemetry_tree(console, v, indent=4)
        else:
            console.print(f"    {k}: {v}")


def _render_telemetry_tree(
    console: Console,
    span_data: dict[str, Any],
    indent: int = 4,
) -> None:
    """Render a hierarchical span tree with color-coded timing."""
    prefix = " " * indent
    name = span_data.get("name", "?")
    duration = span_data.get("duration_ms", 0.0)

    if duration > 1000:
        style = "bold red"
    elif duration > 100:
        style = "yellow"
    else:
        style = "dim"

    line = f"{prefix}[{style}]{duration:>8.2f}ms[/{style}]  {name}"
    annotations = span_data.get("annotations") or {}
    if annotations:
        line += f"  ({', '.join(f'{k}={v}' for k, v in annotations.items())})"
    console.print(line)

    for child in span_data.get("children", []):
        _render_telemetry_tree(console, child, indent=indent + 4)


def _steps_table(steps: list[dict[str, Any]], *, verbose: bool = False) -> Table:
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Service", style="envie.name", no_wrap=True)
    table.add_column("Module")
    table.add_column("Action")
    table.add_column("Workspace", style="envie.workspace")
    table.add_column("Dependencies")
    if verbose:
        table.add_column("State key", style="dim")

    for index, step in enumerate(steps, start=1):
        action = str(step.get("action", ""))
        deps = ", ".join(
            f"{b['service']}/{b['module']}@{b['label']}" for b in step.get("bindings", [])
        )
        row: list[Any] = [
            str(index),
            str(step.get("service", "")),
            str(step.get("module", "")),
            Text(action, style=style_for_action(action)),
            str(step.get("workspace", "")),
            deps,
        ]
        if verbose:
            row.append(str(step.get("state_key", "")))
        table.add_row(*row)
    return table


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    label = Text("ERROR", style="envie.error")
    op = Text(f"  {result.op}", style="envie.op")
    sep = Text(": ")
    console.print(label, op, sep, msg)

    if err and err.code:
        console.print(Text(f"  code: {err.code}", style="dim"))
    if verbose and err and err.detail:
        console.print(Text("  detail:", style="dim"))
        for k, v in err.detail.items():
            console.print(f"    {k}: {v}")
    applied = result.data.get("applied") or result.data.get("destroyed")
    if applied:
        console.print(Text(f"  completed before failure: {', '.join(applied)}", style="dim"))


# ── Plan renderers ────────────────────────────────────────────────────


def _render_plan(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render plan/deploy/destroy results as a step table."""
    d = result.data
    _status_line(console, result)
    _field(console, "service", d.get("service", ""))
    _field(console, "workspace", d.get("workspace", ""))
    if d.get("dry_run"):
        _field(console, "dry_run", True)
    console.print()
    steps = d.get("steps", [])
    console.print(_steps_table(steps, verbose=verbose))

    done_key = "destroyed" if result.op == "destroy" else "applied"
    if done_key in d:
        console.print(f"\n{len(d[done_key])} of {len(steps)} modules {done_key}")
    else:
        console.print(f"\n{len(steps)} modules")
    if verbose:
        _render_meta(console, result)


def _render_outputs(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    _status_line(console, result)
    _field(console, "service", d.get("service", ""))
    _field(console, "workspace", d.get("workspace", ""))
    if "output_file" in d:
        _field(console, "output_file", d["output_file"])
    if verbose:
        _field(console, "tokens", ", ".join(d.get("tokens", [])))

    outputs = d.get("outputs", {})
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Output", style="envie.name", no_wrap=True)
    table.add_column("Value")
    for key, value in outputs.items():
        table.add_row(key, _scalar(value))
    console.print()
    console.print(table)
    console.print(f"\n{len(outputs)} outputs")
    if verbose:
        _render_meta(console, result)


# ── Registry renderers ────────────────────────────────────────────────


def _render_services(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Service", style="envie.name", no_wrap=True)
    table.add_column("Modules")
    table.add_column("Depends on")
    if verbose:
        table.add_column("Path", style="envie.path")
    for item in d.get("items", []):
        row = [
            str(item.get("name", "")),
            ", ".join(item.get("modules", [])),
            ", ".join(item.get("depends", [])),
        ]
        if verbose:
            row.append(str(item.get("path", "")))
        table.add_row(*row)
    console.print(table)
    console.print(f"\n{d.get('count', 0)} services in {d.get('project', '?')}")


def _render_graph(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Service", style="envie.name", no_wrap=True)
    table.add_column("Depends on")
    table.add_column("Dependents", justify="right")
    targets: dict[str, list[str]] = {}
    for source, target in d.get("edges", []):
        targets.setdefault(source, []).append(target)
    for node in d.get("nodes", []):
        table.add_row(
            node["name"],
            ", ".join(targets.get(node["name"], [])),
            str(node["dependents"]),
        )
    console.print(table)
    console.print(f"\n{len(d.get('nodes', []))} services, {len(d.get('edges', []))} edges")


def _render_service(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    _status_line(console, result)
    for key in ("name", "path", "description"):
        if d.get(key):
            _field(console, key, d[key])
    _field(console, "depends", ", ".join(d.get("depends", [])) or "-")
    _field(console, "dependents", ", ".join(d.get("dependents", [])) or "-")
    _field(console, "deployment_order", " -> ".join(d.get("deployment_order", [])))

    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Module", style="envie.name", no_wrap=True)
    table.add_column("References")
    if verbose:
        table.add_column("Path", style="envie.path")
    by_name = {m["name"]: m for m in d.get("modules", [])}
    for name in d.get("module_order", []):
        module = by_name[name]
        refs = ", ".join(f"{r['path']} ({r['environment']})" for r in module["depends"])
        row = [name, refs]
        if verbose:
            row.append(module["path"])
        table.add_row(*row)
    console.print()
    console.print(table)


# ── Environment renderers ─────────────────────────────────────────────


def _render_env_list(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    _field(console, "project", d.get("project", ""))
    _field(console, "current", d.get("current", ""))

    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Environment", style="envie.name", no_wrap=True)
    table.add_column("Kind")
    table.add_column("Workspace", style="envie.workspace")
    table.add_column("Backend")
    for env in d.get("stable", []):
        table.add_row(
            f"stable.{env['name']}",
            Text("stable", style=style_for_kind("stable")),
            env["workspace"],
            env["backend"],
        )
    for env in d.get("ephemeral", []):
        marker = " *" if env.get("current") else ""
        table.add_row(
            f"ephemeral.{env['change_id']}{marker}",
            Text("ephemeral", style=style_for_kind("ephemeral")),
            env["workspace"],
            "",
        )
    console.print()
    console.print(table)


def _render_env(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    _status_line(console, result)
    for key in ("token", "workspace", "kind", "label", "backend", "state_key"):
        if d.get(key) is not None:
            _field(console, key, d[key])
    if verbose and d.get("backend_config"):
        console.print()
        console.print(d["backend_config"], markup=False)


# ── Scan renderer ─────────────────────────────────────────────────────


def _render_scan(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Module", style="envie.name", no_wrap=True)
    table.add_column("Reference")
    table.add_column("Backend")
    table.add_column("Outputs read")
    if verbose:
        table.add_column("Source", style="envie.path")
    for item in d.get("items", []):
        for link in item.get("links", []):
            used = ", ".join(link.get("used_outputs", []))
            row: list[Any] = [
                item["module"],
                link["name"],
                link["backend_type"],
                used or Text("none", style="envie.warning"),
            ]
            if verbose:
                row.append(f"{link.get('source')}:{link.get('line')}")
            table.add_row(*row)
    console.print(table)
    console.print(f"\n{d.get('count', 0)} remote state references")


# ── Generic fallback ──────────────────────────────────────────────────


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Fallback renderer: status line + all data as key-value pairs."""
    _status_line(console, result)
    for key, value in result.data.items():
        _field(console, key, value)
    if verbose:
        _render_meta(console, result)


# ── Dispatch table ────────────────────────────────────────────────────

_OP_RENDERERS: dict[str, Any] = {
    # Deployment
    "plan": _render_plan,
    "deploy": _render_plan,
    "destroy": _render_plan,
    "output": _render_outputs,
    # Registry
    "show": _render_services,
    "show_service": _render_service,
    "show_graph": _render_graph,
    # Environments
    "env_list": _render_env_list,
    "env_current": _render_env,
    "env_resolve": _render_env,
    # Diagnostics
    "scan": _render_scan,
}
