"""
Step state machine — per-step lifecycle and session navigation.

Per step::

    pending ──start──▶ running ──complete──▶ succeeded   (terminal)
       │                  ▲    └─complete──▶ failed
       │                  └──────retry (start)──┘
       └──skip (optional/canSkip)──▶ skipped   (terminal; also from failed)

Navigation keeps an append-only ``history`` with a cursor.  Entering a
step (start/skip) moves the cursor to it, appending when it is not
already the entry under the cursor; ``go_back`` only moves the cursor and
``go_forward`` moves to the next step in order once the current one is done.

All mutations run under one session lock, so NavigationState is never
observed half-updated.  Progress, canGoBack and canGoForward are
computed from the source fields on every read and never stored.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from typing import Literal

from wizardplane.core.errors import (
    Busy,
    DependencyNotSatisfied,
    InvalidArgument,
    InvalidTransition,
    NotFound,
    NotSkippable,
)
from wizardplane.core.models.navigation import NavigationState, progress_percentage
from wizardplane.core.models.step import Step, StepStatus, TaskHandle
from wizardplane.core.models.workflow import Workflow

logger = logging.getLogger(__name__)

StepOutcome = Literal["succeeded", "failed"]

_OUTCOMES: dict[str, StepStatus] = {
    "succeeded": StepStatus.SUCCEEDED,
    "failed": StepStatus.FAILED,
}


def steps_from_workflows(workflows: Iterable[Workflow]) -> list[Step]:
    """Flatten flows into session steps, numbering ``order`` from 1 in flow order."""
    steps: list[Step] = []
    for wf in workflows:
        for ws in wf.steps:
            steps.append(Step(
                id=ws.step_id,
                title=ws.title,
                description=ws.description,
                order=len(steps) + 1,
                is_optional=ws.is_optional,
                can_skip=ws.can_skip,
                depends_on=ws.depends_on,
                blocks_reentry=ws.blocks_reentry,
                flow_id=wf.flow_id,
                failure_message=ws.failure_message,
            ))
    return steps


class StepStateMachine:
    """One wizard session: its steps plus navigation.

    Args:
        steps: Session steps; ids and orders must be unique and every
            dependency must name a step of the session.
        busy_timeout: Seconds to wait for the session lock before
            failing with ``Busy``.  ``None`` waits indefinitely (calls
            queue up).
        on_change: Called with the new NavigationState after every
            mutation, while the lock is held, so calls arrive in order.
    """

    def __init__(
        self,
        steps: Iterable[Step],
        *,
        busy_timeout: float | None = None,
        on_change: Callable[[NavigationState], None] | None = None,
    ) -> None:
        ordered = sorted(steps, key=lambda s: s.order)
        self._validate(ordered)
        self._steps: dict[str, Step] = {s.id: s for s in ordered}
        self._history: list[str] = [ordered[0].id]
        self._cursor = 0
        self._running_tasks: dict[str, str] = {}   # step id → task id
        self._lock = threading.Lock()
        self._busy_timeout = busy_timeout
        self.on_change = on_change

    @classmethod
    def from_workflows(cls, workflows: Iterable[Workflow], **kwargs) -> StepStateMachine:
        return cls(steps_from_workflows(workflows), **kwargs)

    @staticmethod
    def _validate(steps: list[Step]) -> None:
        if not steps:
            raise InvalidArgument("A session needs at least one step")
        ids = [s.id for s in steps]
        if len(set(ids)) != len(ids):
            raise InvalidArgument(f"Duplicate step ids: {sorted({i for i in ids if ids.count(i) > 1})}")
        orders = [s.order for s in steps]
        if len(set(orders)) != len(orders):
            raise InvalidArgument("Step order values must be unique")
        known = set(ids)
        for s in steps:
            unknown = [d for d in s.depends_on if d not in known or d == s.id]
            if unknown:
                raise InvalidArgument(
                    f"Step '{s.id}' depends on unknown steps: {unknown}",
                    details={"stepId": s.id, "dependsOn": unknown},
                )

    # ── Locking ─────────────────────────────────────────────────

    @contextmanager
    def _serialized(self) -> Iterator[None]:
        timeout = -1 if self._busy_timeout is None else self._busy_timeout
        if not self._lock.acquire(timeout=timeout):
            raise Busy("Another wizard operation is in progress; retry shortly")
        try:
            yield
        finally:
            self._lock.release()

    # ── Reads ───────────────────────────────────────────────────

    def steps(self) -> list[Step]:
        with self._lock:
            return list(self._steps.values())

    def get_step(self, step_id: str) -> Step:
        with self._lock:
            return self._require(step_id)

    def running_task(self, step_id: str) -> str | None:
        with self._lock:
            return self._running_tasks.get(step_id)

    @property
    def navigation(self) -> NavigationState:
        with self._lock:
            return self._snapshot()

    # ── Mutations ───────────────────────────────────────────────

    def start(self, step_id: str) -> TaskHandle:
        """Move a Pending/Failed step to Running and hand out its task handle.

        Raises:
            NotFound: Unknown step.
            InvalidTransition: Step is Running, Succeeded or Skipped.
            DependencyNotSatisfied: A dependency is not Succeeded/Skipped.
        """
        with self._serialized():
            step = self._require(step_id)
            if step.status not in (StepStatus.PENDING, StepStatus.FAILED):
                raise InvalidTransition(
                    f"Step '{step_id}' cannot start from {step.status.value}",
                    details={"stepId": step_id, "status": step.status.value},
                )
            unmet = [d for d in step.depends_on if not self._steps[d].done]
            if unmet:
                raise DependencyNotSatisfied(
                    f"Step '{step_id}' is waiting on: {', '.join(unmet)}",
                    details={"stepId": step_id, "unmet": unmet},
                )

            retry = step.status is StepStatus.FAILED
            self._steps[step_id] = step.with_status(StepStatus.RUNNING)
            handle = TaskHandle(task_id=f"task-{uuid.uuid4().hex[:12]}", step_id=step_id)
            self._running_tasks[step_id] = handle.task_id
            self._enter(step_id)
            logger.info(
                "Step %s → running (%s, task %s)", step_id, "retry" if retry else "start", handle.task_id,
            )
            self._changed()
            return handle

    def complete(self, step_id: str, outcome: StepOutcome | StepStatus) -> Step:
        """Finish a Running step as succeeded or failed.

        Raises:
            NotFound: Unknown step.
            InvalidArgument: Outcome is not succeeded/failed.
            InvalidTransition: Step is not Running.
        """
        target = self._outcome(outcome)
        with self._serialized():
            return self._finish(self._require(step_id), target)

    def apply_task_result(self, task_id: str, step_id: str, outcome: StepOutcome | StepStatus) -> bool:
        """Apply a task's terminal event if it is still current.

        The event is discarded (returns False) when the step is no longer
        Running, or is Running under a newer task after a retry.  Task
        results always wait for the lock; ``busy_timeout`` applies to
        callers only.
        """
        target = self._outcome(outcome)
        with self._lock:
            step = self._require(step_id)
            if step.status is not StepStatus.RUNNING or self._running_tasks.get(step_id) != task_id:
                logger.info(
                    "Discarding stale result for %s (task %s, step is %s)",
                    step_id, task_id, step.status.value,
                )
                return False
            self._finish(step, target)
            return True

    def skip(self, step_id: str) -> Step:
        """Mark an optional/skippable step as Skipped.

        Raises:
            NotFound: Unknown step.
            NotSkippable: Step is neither optional nor canSkip.
            InvalidTransition: Step is Running or already terminal.
        """
        with self._serialized():
            step = self._require(step_id)
            if not step.skippable:
                raise NotSkippable(
                    f"Step '{step_id}' cannot be skipped", details={"stepId": step_id},
                )
            self._steps[step_id] = skipped = step.with_status(StepStatus.SKIPPED)
            self._enter(step_id)
            logger.info("Step %s → skipped", step_id)
            self._changed()
            return skipped

    def go_back(self) -> NavigationState:
        """Move the cursor to the previous history entry.

        History is not truncated.  A Running step left behind keeps
        running; its result is applied if it is still Running then.

        Raises:
            InvalidTransition: No earlier entry, or it blocks re-entry.
        """
        with self._serialized():
            if self._cursor == 0:
                raise InvalidTransition("No previous step to go back to")
            previous = self._steps[self._history[self._cursor - 1]]
            if previous.blocks_reentry:
                raise InvalidTransition(
                    f"Step '{previous.id}' cannot be re-entered",
                    details={"stepId": previous.id},
                )
            self._cursor -= 1
            logger.info("Navigate back → %s", previous.id)
            return self._changed()

    def go_forward(self) -> NavigationState:
        """Move to the step after the current one in order.

        Re-uses the next history entry when it already is that step
        (the usual case after ``go_back``), otherwise appends it.

        Raises:
            InvalidTransition: Current step is not done, or it is the last.
        """
        with self._serialized():
            current = self._steps[self._history[self._cursor]]
            following = next((s for s in self._steps.values() if s.order > current.order), None)
            if not current.done or following is None:
                raise InvalidTransition(
                    "No next step to go forward to",
                    details={"stepId": current.id, "status": current.status.value},
                )
            ahead = self._cursor + 1
            if ahead < len(self._history) and self._history[ahead] == following.id:
                self._cursor = ahead
            else:
                self._history.append(following.id)
                self._cursor = len(self._history) - 1
            logger.info("Navigate forward → %s", following.id)
            return self._changed()

    # ── Internals (lock held) ───────────────────────────────────

    def _require(self, step_id: str) -> Step:
        step = self._steps.get(step_id)
        if step is None:
            raise NotFound(f"Step not found: {step_id}", details={"stepId": step_id})
        return step

    @staticmethod
    def _outcome(outcome: StepOutcome | StepStatus) -> StepStatus:
        value = outcome.value if isinstance(outcome, StepStatus) else outcome
        target = _OUTCOMES.get(value)
        if target is None:
            raise InvalidArgument(f"Outcome must be 'succeeded' or 'failed', got {value!r}")
        return target

    def _finish(self, step: Step, target: StepStatus) -> Step:
        if step.status is not StepStatus.RUNNING:
            raise InvalidTransition(
                f"Step '{step.id}' is not running ({step.status.value})",
                details={"stepId": step.id, "status": step.status.value},
            )
        self._steps[step.id] = done = step.with_status(target)
        self._running_tasks.pop(step.id, None)
        logger.info("Step %s → %s", step.id, target.value)
        self._changed()
        return done

    def _enter(self, step_id: str) -> None:
        if self._history[self._cursor] != step_id:
            self._history.append(step_id)
            self._cursor = len(self._history) - 1

    def _changed(self) -> NavigationState:
        nav = self._snapshot()
        if self.on_change is not None:
            try:
                self.on_change(nav)
            except Exception as e:
                logger.warning("Navigation change listener failed: %s", e)
        return nav

    def _snapshot(self) -> NavigationState:
        current = self._steps[self._history[self._cursor]]
        completed = [s.id for s in self._steps.values() if s.status is StepStatus.SUCCEEDED]
        previous = self._steps[self._history[self._cursor - 1]] if self._cursor > 0 else None
        return NavigationState(
            current_step_id=current.id,
            completed_steps=completed,
            available_steps=list(self._steps),
            history=list(self._history),
            history_cursor=self._cursor,
            progress_percentage=progress_percentage(len(completed), len(self._steps)),
            can_go_back=previous is not None and not previous.blocks_reentry,
            can_go_forward=current.done and any(s.order > current.order for s in self._steps.values()),
            can_skip_current=current.skippable
            and current.status in (StepStatus.PENDING, StepStatus.FAILED),
        )
