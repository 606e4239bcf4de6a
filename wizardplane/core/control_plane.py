"""
Control plane — builds and wires the components of one wizard session.

    settings ─▶ catalog, workflow map   (process-wide snapshots, read per call)
            ─▶ StepStateMachine        (steps from supportedFlows, in order)
            ─▶ TaskTracker + AdapterRegistry + DetectionStore
            ─▶ EnvironmentManager      (home, shellFiles, marker label)
            ─▶ Gateway                 (one handler per invoke channel)

Transports (Flask, CLI) hold a ControlPlane and only ever call
``control_plane.gateway.invoke``.  Push events go out through
``gateway.emit`` onto ``control_plane.bus``.
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from typing import Any

from wizardplane.adapters.registry import AdapterRegistry
from wizardplane.core.config.loader import WizardSettings
from wizardplane.core.engine.step_machine import StepStateMachine
from wizardplane.core.engine.tasks import TaskTracker
from wizardplane.core.gateway import Channel, Gateway, GatewayPolicy
from wizardplane.core.gateway.channels import (
    ConfigGetRequest,
    DetectionGetRequest,
    EnvKeysRequest,
    EnvSetRequest,
    StepCompleteRequest,
    StepRequest,
    WorkflowSyncRequest,
)
from wizardplane.core.models.navigation import NavigationState
from wizardplane.core.models.step import Step, TaskHandle
from wizardplane.core.models.task import StepCompletion
from wizardplane.core.models.workflow import Workflow
from wizardplane.core.persistence.shell_config import (
    DEFAULT_CANDIDATES,
    DEFAULT_MARKER_LABEL,
    ShellConfigStore,
)
from wizardplane.core.services.config_catalog import SharedConfigCatalog, get_catalog
from wizardplane.core.services.detection_store import DetectionStore
from wizardplane.core.services.env_manager import EnvironmentManager, Reloader, source_shell_file
from wizardplane.core.services.event_bus import EventBus
from wizardplane.core.services.workflow_sync import WorkflowMap, get_workflow_map

logger = logging.getLogger(__name__)

SUPPORTED_FLOWS_ID = "installer.workflow.supportedFlows"
SHELL_FILES_ID = "installer.env.shellFiles"
VARIABLE_BANNER_ID = "installer.env.variableBanner"


class ControlPlane:
    """One wizard session and everything it talks to."""

    def __init__(
        self,
        settings: WizardSettings | None = None,
        *,
        catalog: SharedConfigCatalog | None = None,
        workflow_map: WorkflowMap | None = None,
        adapters: AdapterRegistry | None = None,
        environ: MutableMapping[str, str] | None = None,
        reloader: Reloader | None = source_shell_file,
    ) -> None:
        self.settings = settings or WizardSettings()
        self._catalog = catalog
        self._workflow_map = workflow_map
        self.bus = EventBus()

        self.policy = GatewayPolicy.default(self.settings.allowed_origins)
        self.gateway = Gateway(self.policy, self._handlers(), self.bus)

        self.machine = StepStateMachine.from_workflows(
            self.flows(),
            busy_timeout=self.settings.busy_timeout,
            on_change=self._navigation_changed,
        )
        self.detections = DetectionStore(emit=self.gateway.emit)
        self.tasks = TaskTracker(self.machine, emit=self.gateway.emit, detections=self.detections)
        self.adapters = adapters or AdapterRegistry(mock_mode=self.settings.mock_adapters)

        store = ShellConfigStore(
            self.settings.home,
            candidates=self.catalog.value(SHELL_FILES_ID) or DEFAULT_CANDIDATES,
            marker_label=(
                self.settings.marker_label
                or self.catalog.value(VARIABLE_BANNER_ID)
                or DEFAULT_MARKER_LABEL
            ),
        )
        self.env = EnvironmentManager(
            store,
            environ=environ,
            reloader=reloader if self.settings.reload_shell else None,
        )
        logger.info(
            "Control plane ready: %d steps, workflows %s, home %s",
            len(self.machine.steps()), self.workflow_map.version, self.settings.home,
        )

    @property
    def catalog(self) -> SharedConfigCatalog:
        """The injected catalog, else the current process-wide snapshot."""
        return self._catalog if self._catalog is not None else get_catalog()

    @property
    def workflow_map(self) -> WorkflowMap:
        """The injected map, else the current process-wide snapshot."""
        return self._workflow_map if self._workflow_map is not None else get_workflow_map()

    def flows(self) -> list[Workflow]:
        """Workflows in ``supportedFlows`` order; unlisted flows follow in map order."""
        supported = self.catalog.value(SUPPORTED_FLOWS_ID) or []
        known = self.workflow_map.flow_ids()
        for flow_id in supported:
            if flow_id not in known:
                logger.warning("Supported flow %s has no workflow definition", flow_id)
        ordered = [f for f in supported if f in known]
        ordered += [f for f in known if f not in ordered]
        return [self.workflow_map.get(f) for f in ordered]

    def close(self) -> None:
        self.adapters.shutdown(wait=False)

    # ── Push helpers ────────────────────────────────────────────

    def _navigation_changed(self, nav: NavigationState) -> None:
        self.gateway.emit(Channel.NAVIGATION_CHANGED.value, nav)

    def _completed(self, step: Step, task_id: str | None = None) -> None:
        self.gateway.emit(
            Channel.STEP_COMPLETED.value,
            StepCompletion(step_id=step.id, status=step.status, task_id=task_id),
        )

    # ── Channel handlers ────────────────────────────────────────

    def _handlers(self) -> dict[Channel, Any]:
        return {
            Channel.CONFIG_GET: self._config_get,
            Channel.CONFIG_LIST: lambda _req: self.catalog.list(),
            Channel.WORKFLOW_SYNC: self._workflow_sync,
            Channel.WORKFLOW_LIST: self._workflow_list,
            Channel.STEP_START: self._step_start,
            Channel.STEP_COMPLETE: self._step_complete,
            Channel.STEP_SKIP: self._step_skip,
            Channel.STEP_LIST: lambda _req: self.machine.steps(),
            Channel.NAVIGATION_BACK: lambda _req: self.machine.go_back(),
            Channel.NAVIGATION_NEXT: lambda _req: self.machine.go_forward(),
            Channel.NAVIGATION_STATE: lambda _req: self.machine.navigation,
            Channel.DETECTION_GET: self._detection_get,
            Channel.ENV_GET: self._env_get,
            Channel.ENV_SET: self._env_set,
            Channel.ENV_REMOVE: self._env_remove,
        }

    def _config_get(self, req: ConfigGetRequest):
        return self.catalog.get(req.id)

    def _workflow_sync(self, req: WorkflowSyncRequest):
        return self.workflow_map.sync(req.flow_id, req.version)

    def _workflow_list(self, _req) -> dict[str, Any]:
        return {
            "version": self.workflow_map.version,
            "flows": [wf.flow_id for wf in self.flows()],
        }

    def _step_start(self, req: StepRequest) -> TaskHandle:
        handle = self.machine.start(req.step_id)
        # the lock is released here; an adapter finishing at once can apply its result
        reporter = self.tasks.begin(handle)
        self.adapters.launch(handle, reporter)
        return handle

    def _step_complete(self, req: StepCompleteRequest) -> Step:
        task_id = self.machine.running_task(req.step_id)
        step = self.machine.complete(req.step_id, req.outcome)
        self._completed(step, task_id)
        return step

    def _step_skip(self, req: StepRequest) -> Step:
        step = self.machine.skip(req.step_id)
        self._completed(step)
        return step

    def _detection_get(self, req: DetectionGetRequest):
        return self.detections.get(req.component)

    def _env_get(self, req: EnvKeysRequest):
        return self.env.get(req.keys)

    def _env_set(self, req: EnvSetRequest):
        result = self.env.set(req.variables)
        self.gateway.emit(Channel.ENV_PERSISTED.value, result)
        return result

    def _env_remove(self, req: EnvKeysRequest):
        return self.env.remove(req.keys)
