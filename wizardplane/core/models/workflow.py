"""
Workflow models — the versioned definition of each wizard flow.

A Workflow value is immutable per version.  A new version is a new
value, which is what lets sync compare versions instead of contents.
"""

from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict

from wizardplane.core.models.base import WireModel


class StepGuard(WireModel):
    """Condition shown to the user before a step runs (e.g. requiresNetwork)."""

    model_config = ConfigDict(frozen=True)

    id: str
    description: str


class WorkflowStep(WireModel):
    model_config = ConfigDict(frozen=True)

    step_id: str
    title: str
    description: str = ""
    depends_on: tuple[str, ...] = ()
    guard: StepGuard | None = None
    failure_message: str | None = None
    is_optional: bool = False
    can_skip: bool = False
    blocks_reentry: bool = False


class Workflow(WireModel):
    model_config = ConfigDict(frozen=True)

    flow_id: str
    version: str
    steps: tuple[WorkflowStep, ...]
    success_criteria: tuple[str, ...] = ()
    rollback_actions: tuple[str, ...] = ()


class WorkflowSyncResponse(WireModel):
    """Reply to ``workflow.sync``; ``workflow`` only when status is updated."""

    model_config = ConfigDict(frozen=True)

    status: Literal["unchanged", "updated"]
    version: str
    flow_id: str
    workflow: Workflow | None = None
