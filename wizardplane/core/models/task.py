"""
Task event models — what a running step reports back.

Progress events are ordered per task.  A task produces at most one
completion; the ``step.completed`` push channel also carries
completions that did not come from a task (``step.complete`` called
directly, ``step.skip``).
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import ConfigDict, Field

from wizardplane.core.models.base import WireModel
from wizardplane.core.models.step import StepStatus


def _now() -> datetime:
    return datetime.now(UTC)


class TaskProgress(WireModel):
    model_config = ConfigDict(frozen=True)

    task_id: str
    step_id: str
    percent: int = Field(ge=0, le=100)
    message: str = ""
    reported_at: datetime = Field(default_factory=_now)


class StepCompletion(WireModel):
    """Terminal outcome of a step, pushed on ``step.completed``."""

    model_config = ConfigDict(frozen=True)

    step_id: str
    status: StepStatus
    task_id: str | None = None
    message: str | None = None
    details: dict[str, Any] | None = None
    applied: bool = True
