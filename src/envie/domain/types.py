"""Classification enums shared by the resolver, graph, and plan layers."""

from __future__ import annotations

from enum import StrEnum


class EnvironmentKind(StrEnum):
    """Where a workspace's state lives."""

    EPHEMERAL = "ephemeral"
    STABLE = "stable"


class VisitState(StrEnum):
    """Three-state coloring used by the dependency traversal."""

    UNVISITED = "unvisited"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class StepAction(StrEnum):
    """What a deploy plan does with a module."""

    DEPLOY = "deploy"
    REFERENCE = "reference"
