"""
Step and TaskHandle models — the unit of wizard work.

Steps are frozen: the state machine replaces a step with a copy
carrying the new status (``with_status``) and never edits one in place.
The transition table is the single source of truth for what a step
may become next.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import ConfigDict, Field

from wizardplane.core.errors import InvalidTransition
from wizardplane.core.models.base import WireModel


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


_TRANSITIONS: dict[StepStatus, frozenset[StepStatus]] = {
    StepStatus.PENDING: frozenset({StepStatus.RUNNING, StepStatus.SKIPPED}),
    StepStatus.RUNNING: frozenset({StepStatus.SUCCEEDED, StepStatus.FAILED}),
    StepStatus.SUCCEEDED: frozenset(),
    StepStatus.FAILED: frozenset({StepStatus.RUNNING, StepStatus.SKIPPED}),
    StepStatus.SKIPPED: frozenset(),
}


def can_transition(current: StepStatus, target: StepStatus) -> bool:
    """Whether ``current → target`` is a legal step transition."""
    return target in _TRANSITIONS[current]


class Step(WireModel):
    """A single unit of wizard work with lifecycle status."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str = ""
    order: int
    status: StepStatus = StepStatus.PENDING
    is_optional: bool = False
    can_skip: bool = False
    depends_on: tuple[str, ...] = ()
    blocks_reentry: bool = False
    flow_id: str = ""
    failure_message: str | None = None

    @property
    def skippable(self) -> bool:
        return self.is_optional or self.can_skip

    @property
    def done(self) -> bool:
        """Succeeded or Skipped — satisfies dependents."""
        return self.status in (StepStatus.SUCCEEDED, StepStatus.SKIPPED)

    def with_status(self, status: StepStatus) -> Step:
        """Return a copy in ``status``.

        Raises:
            InvalidTransition: If the transition table forbids it.
        """
        if not can_transition(self.status, status):
            raise InvalidTransition(
                f"Step '{self.id}' cannot go from {self.status.value} to {status.value}",
                details={"stepId": self.id, "from": self.status.value, "to": status.value},
            )
        return self.model_copy(update={"status": status})


def _now() -> datetime:
    return datetime.now(UTC)


class TaskHandle(WireModel):
    """Handle for the asynchronous task behind a Running step."""

    model_config = ConfigDict(frozen=True)

    task_id: str
    step_id: str
    started_at: datetime = Field(default_factory=_now)
