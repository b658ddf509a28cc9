"""Deployment plan models.

A :class:`DeploymentPlan` is the ordered service list the graph resolver
produces for one target.  The deploy service expands it into
:class:`PlanStep` entries (one per module) whose dependency bindings carry
the resolved environment and state key of every reference.
"""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, Field, SkipValidation

from envie.domain.tokens import EnvironmentToken
from envie.domain.types import EnvironmentKind, StepAction

# Environment label the output aggregator treats as ephemeral.
EPHEMERAL_MARKER = "dev"


class DeploymentPlan(BaseModel):
    """Services to deploy for *target*, every dependency before its dependents."""

    model_config = {"frozen": True}

    target: str
    services: tuple[str, ...]

    def reversed(self) -> tuple[str, ...]:
        """Destruction order."""
        return tuple(reversed(self.services))


class DependencyBinding(BaseModel):
    """One module dependency reference after environment resolution."""

    model_config = {"frozen": True}

    reference: str  # the declared target token
    environment: str  # the chosen environment token, as written
    token: Annotated[EnvironmentToken, SkipValidation] = Field(exclude=True, repr=False)
    service: str
    module: str
    workspace: str
    kind: EnvironmentKind
    label: str
    state_key: str


class PlanStep(BaseModel):
    """A module in plan order and what the plan does with it."""

    model_config = {"frozen": True}

    service: str
    module: str
    path: str
    action: StepAction
    workspace: str
    state_key: str
    bindings: tuple[DependencyBinding, ...] = Field(default_factory=tuple)

    @property
    def component(self) -> str:
        return f"{self.service}/{self.module}"


def dependency_token(component: str, label: str) -> str:
    """``component:environment`` token consumed by the output aggregator."""
    return f"{component}:{label}"
