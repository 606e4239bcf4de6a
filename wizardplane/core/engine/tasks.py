"""
Task tracker — progress and terminal events of running steps.

``start`` on the state machine returns a TaskHandle; the tracker
records everything the adapter reports against that handle:

    report_progress  ordered, clamped to 0..100, pushed on step.progress
    report_result    at most once per task; applied to the state machine
                     only while the step is still Running under this task

A result that arrives after the user moved on (step completed or
skipped by hand, or retried under a new task) is stale: it is logged
and dropped, and the step keeps the state the user gave it.

Finished tasks are kept for lookup up to ``max_finished``; older
ones are forgotten, oldest first.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from wizardplane.core.models.base import WireModel
from wizardplane.core.models.detection import DetectionResult
from wizardplane.core.models.step import StepStatus, TaskHandle
from wizardplane.core.models.task import StepCompletion, TaskProgress

if TYPE_CHECKING:
    from wizardplane.core.engine.step_machine import StepOutcome, StepStateMachine
    from wizardplane.core.services.detection_store import DetectionStore

logger = logging.getLogger(__name__)

Emitter = Callable[[str, WireModel], Any]

MAX_FINISHED_TASKS = 256


@dataclass
class _TaskRecord:
    handle: TaskHandle
    progress: list[TaskProgress] = field(default_factory=list)
    result: StepCompletion | None = None


class TaskTracker:
    """Bookkeeping for the tasks behind Running steps."""

    def __init__(
        self,
        machine: StepStateMachine,
        *,
        emit: Emitter | None = None,
        detections: DetectionStore | None = None,
        max_finished: int = MAX_FINISHED_TASKS,
    ) -> None:
        self._machine = machine
        self._emit = emit
        self._detections = detections
        self._tasks: dict[str, _TaskRecord] = {}
        self._finished: deque[str] = deque()
        self._max_finished = max_finished
        self._lock = threading.Lock()

    def begin(self, handle: TaskHandle) -> TaskReporter:
        """Start tracking ``handle`` and return the reporter its adapter gets."""
        with self._lock:
            self._tasks[handle.task_id] = _TaskRecord(handle=handle)
        logger.debug("Tracking task %s for step %s", handle.task_id, handle.step_id)
        return TaskReporter(self, handle)

    def report_progress(self, task_id: str, percent: int, message: str = "") -> bool:
        """Record a progress event; ignored once the task has a result."""
        with self._lock:
            record = self._tasks.get(task_id)
            if record is None or record.result is not None:
                logger.debug("Ignoring progress for unknown or finished task %s", task_id)
                return False
            event = TaskProgress(
                task_id=task_id,
                step_id=record.handle.step_id,
                percent=max(0, min(100, int(percent))),
                message=message,
            )
            record.progress.append(event)
        self._publish("step.progress", event)
        return True

    def report_result(
        self,
        task_id: str,
        outcome: StepOutcome,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> bool:
        """Record the task's terminal event and apply it if still current.

        Returns whether the state machine took the result.  A second
        result for the same task is ignored.
        """
        with self._lock:
            record = self._tasks.get(task_id)
            if record is None:
                logger.warning("Result for unknown task %s dropped", task_id)
                return False
            if record.result is not None:
                logger.warning(
                    "Task %s already reported %s; ignoring %s",
                    task_id, record.result.status.value, outcome,
                )
                return False
            step_id = record.handle.step_id
            # claim the slot before leaving the lock so a racing second result loses
            record.result = StepCompletion(
                step_id=step_id, status=StepStatus(outcome), task_id=task_id,
                message=message, details=details, applied=False,
            )
            self._finished.append(task_id)
            while len(self._finished) > self._max_finished:
                self._tasks.pop(self._finished.popleft(), None)

        applied = self._machine.apply_task_result(task_id, step_id, outcome)
        completion = record.result.model_copy(update={"applied": applied})
        with self._lock:
            record.result = completion
        if applied:
            self._publish("step.completed", completion)
        return applied

    def report_detection(self, result: DetectionResult) -> bool:
        if self._detections is None:
            return False
        return self._detections.record(result)

    def progress(self, task_id: str) -> list[TaskProgress]:
        with self._lock:
            record = self._tasks.get(task_id)
            return list(record.progress) if record else []

    def result(self, task_id: str) -> StepCompletion | None:
        with self._lock:
            record = self._tasks.get(task_id)
            return record.result if record else None

    def _publish(self, channel: str, payload: WireModel) -> None:
        if self._emit is None:
            return
        try:
            self._emit(channel, payload)
        except Exception as e:
            logger.warning("Failed to push %s: %s", channel, e)


class TaskReporter:
    """Handle-bound view of the tracker given to an adapter."""

    def __init__(self, tracker: TaskTracker, handle: TaskHandle) -> None:
        self._tracker = tracker
        self.handle = handle

    @property
    def task_id(self) -> str:
        return self.handle.task_id

    @property
    def step_id(self) -> str:
        return self.handle.step_id

    def progress(self, percent: int, message: str = "") -> None:
        self._tracker.report_progress(self.task_id, percent, message)

    def detected(self, result: DetectionResult) -> None:
        self._tracker.report_detection(result)

    def succeeded(self, message: str | None = None, details: dict[str, Any] | None = None) -> bool:
        return self._tracker.report_result(self.task_id, "succeeded", message, details)

    def failed(self, message: str | None = None, details: dict[str, Any] | None = None) -> bool:
        return self._tracker.report_result(self.task_id, "failed", message, details)
