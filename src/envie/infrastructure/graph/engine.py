"""DependencyGraph — service ordering over a discovered registry.

Rebuilt per invocation from the registry, no cross-invocation cache.
Ordering uses an explicit-stack depth-first traversal with three-state
coloring (unvisited / in-progress / done):

- reaching an in-progress node closes a cycle and fails immediately;
- a done node is never re-entered, so a shared dependency appears once,
  before the first service that needs it (diamond collapse);
- the emitted order is completion order, dependencies first.

The same traversal orders the modules inside one service.  The NetworkX
view (edge = dependent -> dependency) backs the read-only queries used by
``envie show``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from typing import TYPE_CHECKING

import networkx as nx

from envie.domain.errors import DependencyError, ValidationError
from envie.domain.plan import DeploymentPlan
from envie.domain.types import VisitState

if TYPE_CHECKING:
    from envie.infrastructure.registry import DiscoveredModule, ServiceRegistry

logger = logging.getLogger(__name__)

type _Graph = nx.DiGraph


def post_order(
    start: str,
    neighbours: Callable[[str], Iterable[str]],
    *,
    kind: str = "service",
) -> list[str]:
    """Return *start* and everything reachable from it, dependencies first.

    Raises:
        DependencyError: If a cycle is reachable from *start*.  The message
            names the service that closes the cycle and the cycle path.
    """
    state: dict[str, VisitState] = {}
    order: list[str] = []
    path: list[str] = []
    stack: list[tuple[str, Iterator[str]]] = []

    def enter(node: str) -> None:
        state[node] = VisitState.IN_PROGRESS
        path.append(node)
        stack.append((node, iter(neighbours(node))))

    enter(start)
    while stack:
        node, children = stack[-1]
        for child in children:
            child_state = state.get(child, VisitState.UNVISITED)
            if child_state is VisitState.IN_PROGRESS:
                cycle = [*path[path.index(child) :], child]
                msg = (
                    f"Cyclic dependency detected involving {kind} '{child}': "
                    + " -> ".join(cycle)
                )
                raise DependencyError(msg, cycle=cycle)
            if child_state is VisitState.UNVISITED:
                enter(child)
                break
        else:
            stack.pop()
            path.pop()
            state[node] = VisitState.DONE
            order.append(node)
    return order


class DependencyGraph:
    """Service dependency graph for one registry."""

    def __init__(self, registry: ServiceRegistry) -> None:
        self._registry = registry
        self._edges: dict[str, list[str]] = {}
        self._graph: _Graph | None = None

    def dependencies_of(self, service_name: str) -> list[str]:
        """Registered services *service_name* depends on, in declaration order."""
        cached = self._edges.get(service_name)
        if cached is not None:
            return cached

        service = self._registry.get_service(service_name)
        deps: list[str] = []
        for token in service.descriptor.depends:
            dep = self._registry.resolve_dependency_name(token, service)
            if dep not in self._registry.services:
                logger.warning(
                    "Service %s depends on unregistered service %s; ignoring for ordering",
                    service_name,
                    dep,
                )
                continue
            if dep not in deps:
                deps.append(dep)
        self._edges[service_name] = deps
        return deps

    def resolve(self, service_name: str) -> DeploymentPlan:
        """Deployment order for *service_name*: every transitive dependency once, first."""
        if service_name not in self._registry.services:
            known = sorted(self._registry.services)
            msg = f"Service '{service_name}' not found. Available: {known}"
            raise ValidationError(msg, service=service_name, available=known)
        order = post_order(service_name, self.dependencies_of)
        logger.debug("Resolved deployment order for %s: %s", service_name, order)
        return DeploymentPlan(target=service_name, services=tuple(order))

    def module_order(self, service_name: str) -> list[DiscoveredModule]:
        """A service's modules, each after the sibling modules it references."""
        service = self._registry.get_service(service_name)
        by_name = {module.name: module for module in service.modules}

        def siblings(name: str) -> list[str]:
            module = by_name[name]
            found: list[str] = []
            for ref in module.descriptor.depends:
                target = self._registry.resolve_module_reference(ref.path, module)
                if target.service == service_name and target.name not in found:
                    found.append(target.name)
            return found

        ordered: list[str] = []
        for module in service.modules:
            if module.name in ordered:
                continue
            for name in post_order(module.name, siblings, kind="module"):
                if name not in ordered:
                    ordered.append(name)
        return [by_name[name] for name in ordered]

    # ------------------------------------------------------------------
    # NetworkX view
    # ------------------------------------------------------------------

    @property
    def graph(self) -> _Graph:
        """The whole-registry graph, built on first access."""
        if self._graph is None:
            self._graph = self._build()
        return self._graph

    def _build(self) -> _Graph:
        g: _Graph = nx.DiGraph()
        for name, service in self._registry.services.items():
            g.add_node(name, path=str(service.path), modules=len(service.modules))
        for name in self._registry.services:
            for dep in self.dependencies_of(name):
                g.add_edge(name, dep)
        return g

    def dependents_of(self, service_name: str) -> list[str]:
        """Services that transitively depend on *service_name*, sorted."""
        if service_name not in self.graph:
            return []
        return sorted(nx.ancestors(self.graph, service_name))

    def find_cycles(self) -> list[list[str]]:
        """Every elementary cycle in the registry, for diagnostics."""
        return [list(cycle) for cycle in nx.simple_cycles(self.graph)]
