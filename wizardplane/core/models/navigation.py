"""
NavigationState — derived view of wizard progress.

A NavigationState is never stored.  The step machine builds a fresh
one from its source fields (steps, history, cursor) on every read, so
progress and the back/forward flags cannot drift from the data they
summarize.  The validator re-checks the invariants on construction.
"""

from __future__ import annotations

from pydantic import ConfigDict, model_validator

from wizardplane.core.models.base import WireModel


def progress_percentage(completed: int, total: int) -> int:
    """``completed / total * 100`` rounded half up, clamped to [0, 100]."""
    if total <= 0:
        return 0
    # floor(100 * c / t + 0.5) in integer arithmetic
    value = (200 * completed + total) // (2 * total)
    return max(0, min(100, value))


class NavigationState(WireModel):
    """Snapshot of the session's navigation."""

    model_config = ConfigDict(frozen=True)

    current_step_id: str
    completed_steps: list[str]
    available_steps: list[str]
    history: list[str]
    history_cursor: int
    progress_percentage: int
    can_go_back: bool = False
    can_go_forward: bool = False
    can_skip_current: bool = False

    @model_validator(mode="after")
    def _check_invariants(self) -> NavigationState:
        available = set(self.available_steps)
        if self.current_step_id not in available:
            raise ValueError(
                f"currentStepId {self.current_step_id!r} is not an available step"
            )
        stray = [s for s in self.completed_steps if s not in available]
        if stray:
            raise ValueError(f"completedSteps not in availableSteps: {stray}")
        expected = progress_percentage(len(self.completed_steps), len(self.available_steps))
        if self.progress_percentage != expected:
            raise ValueError(
                f"progressPercentage {self.progress_percentage} != {expected}"
            )
        if self.history and not 0 <= self.history_cursor < len(self.history):
            raise ValueError(f"historyCursor {self.history_cursor} out of range")
        return self
