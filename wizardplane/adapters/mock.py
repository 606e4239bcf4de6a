"""
Mock adapter — stands in for every external tool in mock mode.

Reports success immediately unless a step was configured to fail.
"""

from __future__ import annotations

from wizardplane.adapters.base import StepAdapter, StepReceipt
from wizardplane.core.engine.tasks import TaskReporter
from wizardplane.core.models.step import TaskHandle


class MockAdapter(StepAdapter):
    """Universal mock adapter.

    By default, succeeds for every step. Can be configured with a
    failure per step id.
    """

    def __init__(
        self,
        adapter_name: str = "mock",
        available: bool = True,
        default_message: str = "[mock] completed",
    ):
        self._name = adapter_name
        self._available = available
        self._default_message = default_message
        self._failures: dict[str, str] = {}
        self._call_log: list[TaskHandle] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[TaskHandle]:
        """All task handles this mock has run."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def is_available(self) -> bool:
        return self._available

    def set_failure(self, step_id: str, error: str = "Mock failure") -> None:
        """Configure a specific step to fail."""
        self._failures[step_id] = error

    def run(self, handle: TaskHandle, reporter: TaskReporter) -> StepReceipt:
        self._call_log.append(handle)

        if handle.step_id in self._failures:
            return StepReceipt.failure(
                adapter=self._name, step_id=handle.step_id,
                error=self._failures[handle.step_id], mock=True,
            )

        reporter.progress(100, self._default_message)
        return StepReceipt.success(
            adapter=self._name, step_id=handle.step_id,
            message=self._default_message, mock=True,
        )

    def reset(self) -> None:
        """Clear call log and configured failures."""
        self._call_log.clear()
        self._failures.clear()
