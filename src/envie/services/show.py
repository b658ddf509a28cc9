"""ShowService — describe discovered services, modules and their ordering."""

from __future__ import annotations

from typing import Any

from envie.domain.errors import EnvieError
from envie.infrastructure.registry import DiscoveredService
from envie.services.base import BaseService
from envie.services.result import ServiceResult
from envie.services.telemetry import traced


def _module_data(service: DiscoveredService) -> list[dict[str, Any]]:
    return [
        {
            "name": module.name,
            "path": str(module.path),
            "description": module.descriptor.description,
            "depends": [
                {"path": ref.path, "environment": ref.environment}
                for ref in module.descriptor.depends
            ],
        }
        for module in service.modules
    ]


class ShowService(BaseService):
    """Registry and graph views."""

    @traced
    def list_services(self) -> ServiceResult:
        """Every registered service with its direct dependencies."""
        op = "show"
        try:
            registry = self._project.registry
            graph = self._project.graph
            items = [
                {
                    "name": name,
                    "path": str(service.path),
                    "modules": [m.name for m in service.modules],
                    "depends": graph.dependencies_of(name),
                }
                for name, service in sorted(registry.services.items())
            ]
            cycles = graph.find_cycles()
        except EnvieError as exc:
            return ServiceResult.failure(op, exc)

        warnings = [f"Dependency cycle: {' -> '.join([*c, c[0]])}" for c in cycles]
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "project": self._project.project_name,
                "root": str(registry.root),
                "count": len(items),
                "items": items,
            },
            warnings=warnings,
        )

    @traced
    def show_service(self, name: str | None = None) -> ServiceResult:
        """One service: modules, module order, deployment order, dependents."""
        op = "show_service"
        try:
            target = self._target_service(name)
            service = self._project.registry.get_service(target)
            graph = self._project.graph
            plan = graph.resolve(target)
            data = {
                "name": target,
                "path": str(service.path),
                "description": service.descriptor.description,
                "modules": _module_data(service),
                "module_order": [m.name for m in graph.module_order(target)],
                "depends": graph.dependencies_of(target),
                "deployment_order": list(plan.services),
                "dependents": graph.dependents_of(target),
            }
        except EnvieError as exc:
            return ServiceResult.failure(op, exc)
        return ServiceResult(ok=True, op=op, data=data)

    @traced
    def graph_view(self) -> ServiceResult:
        """Whole-project dependency graph: nodes, edges and cycles."""
        op = "show_graph"
        try:
            graph = self._project.graph.graph
            nodes = [
                {
                    "name": name,
                    "depends": graph.out_degree(name),
                    "dependents": graph.in_degree(name),
                }
                for name in sorted(graph.nodes)
            ]
            edges = sorted([source, target] for source, target in graph.edges)
            cycles = self._project.graph.find_cycles()
        except EnvieError as exc:
            return ServiceResult.failure(op, exc)

        warnings = [f"Dependency cycle: {' -> '.join([*c, c[0]])}" for c in cycles]
        return ServiceResult(
            ok=True,
            op=op,
            data={"nodes": nodes, "edges": edges, "cycles": cycles},
            warnings=warnings,
        )
