"""
Domain models — Pydantic types for the wizard control-plane.

All models are re-exported here for convenient access:

    from wizardplane.core.models import Step, NavigationState, Workflow
"""

from wizardplane.core.models.base import WireModel
from wizardplane.core.models.catalog import SharedConfigEntry
from wizardplane.core.models.detection import DetectionResult
from wizardplane.core.models.environment import (
    EnvironmentVariable,
    EnvRemoveResult,
    EnvSetResult,
    EnvSource,
)
from wizardplane.core.models.navigation import NavigationState, progress_percentage
from wizardplane.core.models.step import Step, StepStatus, TaskHandle, can_transition
from wizardplane.core.models.task import StepCompletion, TaskProgress
from wizardplane.core.models.workflow import (
    StepGuard,
    Workflow,
    WorkflowStep,
    WorkflowSyncResponse,
)

__all__ = [
    # detection.py
    "DetectionResult",
    # environment.py
    "EnvRemoveResult",
    "EnvSetResult",
    "EnvSource",
    "EnvironmentVariable",
    # navigation.py
    "NavigationState",
    # catalog.py
    "SharedConfigEntry",
    # step.py
    "Step",
    # task.py
    "StepCompletion",
    # workflow.py
    "StepGuard",
    "StepStatus",
    "TaskHandle",
    "TaskProgress",
    # base.py
    "WireModel",
    "Workflow",
    "WorkflowStep",
    "WorkflowSyncResponse",
    "can_transition",
    "progress_percentage",
]
