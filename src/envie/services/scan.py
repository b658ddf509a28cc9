"""ScanService — report remote-state references found in module sources."""

from __future__ import annotations

from typing import Any

from envie.domain.errors import EnvieError
from envie.domain.scanner import (
    extract_used_outputs,
    find_dead_links,
    read_source,
    scan_directory,
    terraform_files,
)
from envie.infrastructure.registry import DiscoveredModule
from envie.services.base import BaseService
from envie.services.result import ServiceResult
from envie.services.telemetry import trace_span, traced


def _scan_module(module: DiscoveredModule) -> dict[str, Any]:
    found = scan_directory(module.path)
    combined = "\n".join(read_source(path) for path in terraform_files(module.path))
    links = [
        {
            "name": link.name,
            "backend_type": link.backend_type,
            "backend_config": link.backend_config,
            "source": link.source,
            "line": link.line,
            "used_outputs": sorted(extract_used_outputs(combined, link.name)),
        }
        for link in found
    ]
    return {
        "module": module.key,
        "path": str(module.path),
        "links": links,
        "dead": find_dead_links(combined, found),
    }


class ScanService(BaseService):
    """Remote-state link diagnostics."""

    @traced
    def scan(self, service: str | None = None) -> ServiceResult:
        """Scan one service's modules, or every module in the project.

        Dead links (references whose outputs are never read) are reported
        as warnings.
        """
        op = "scan"
        try:
            registry = self._project.registry
            if service:
                modules = list(registry.get_service(service).modules)
            else:
                modules = [registry.modules[key] for key in sorted(registry.modules)]
            with trace_span("scan_modules") as span:
                items = [_scan_module(module) for module in modules]
                if span:
                    span.annotate("modules", len(items))
        except EnvieError as exc:
            return ServiceResult.failure(op, exc)

        warnings = [
            f"{item['module']}: remote state '{name}' is never read"
            for item in items
            for name in item["dead"]
        ]
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "count": sum(len(item["links"]) for item in items),
                "items": items,
            },
            warnings=warnings,
        )
