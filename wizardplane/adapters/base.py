"""
Adapter base — the contract between the step engine and external tools.

The engine never runs installers or detectors itself.  Each step that
does real work is bound to a StepAdapter; the registry runs it on a
worker thread after ``start`` returns, and the adapter talks back only
through its TaskReporter and the receipt it returns.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from wizardplane.core.engine.tasks import TaskReporter
    from wizardplane.core.models.step import TaskHandle


class StepReceipt(BaseModel):
    """Outcome of one adapter run."""

    adapter: str
    step_id: str
    status: Literal["succeeded", "failed"]
    message: str = ""
    error: str | None = None
    duration_ms: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "succeeded"

    @classmethod
    def success(cls, adapter: str, step_id: str, message: str = "", **metadata: Any) -> StepReceipt:
        return cls(adapter=adapter, step_id=step_id, status="succeeded", message=message, metadata=metadata)

    @classmethod
    def failure(cls, adapter: str, step_id: str, error: str, **metadata: Any) -> StepReceipt:
        return cls(adapter=adapter, step_id=step_id, status="failed", error=error, metadata=metadata)


class StepAdapter(ABC):
    """Abstract base class for step adapters.

    Adapters perform external side effects and return receipts.
    They NEVER raise exceptions — failures are captured in the receipt.

    To create a new adapter:
        1. Subclass StepAdapter
        2. Implement name, is_available, run
        3. Bind it to step ids in the AdapterRegistry
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'node-installer')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the underlying tool can run here.  Fast, never raises."""

    @abstractmethod
    def run(self, handle: TaskHandle, reporter: TaskReporter) -> StepReceipt:
        """Do the step's work, reporting progress through ``reporter``.

        The registry turns the returned receipt into the task's terminal
        event; adapters do not report the result themselves.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
