"""
Workflow map and the versioned sync protocol.

The UI caches workflows and asks ``sync(flowId, version)``:

    unchanged  →  {status: "unchanged", version, flowId}
    otherwise  →  {status: "updated", version, flowId, workflow}

There is one ``workflowVersion`` stamp for the whole map, not one per
flow.  Any change to any flow bumps it, so every cached flow refreshes
on the next sync.  Unrelated flows get refreshed too; that is accepted.

Like the catalog, the map is a process-wide immutable snapshot that is
only ever replaced whole.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from types import MappingProxyType

from wizardplane.core.errors import NotFound
from wizardplane.core.models.workflow import Workflow, WorkflowSyncResponse

logger = logging.getLogger(__name__)


class WorkflowMap:
    """Immutable, versioned set of workflows."""

    def __init__(self, version: str, workflows: Iterable[Workflow]) -> None:
        flows: dict[str, Workflow] = {}
        for wf in workflows:
            if wf.flow_id in flows:
                raise ValueError(f"Duplicate flow id: {wf.flow_id}")
            if wf.version != version:
                raise ValueError(
                    f"Flow {wf.flow_id!r} has version {wf.version!r}, map is {version!r}"
                )
            flows[wf.flow_id] = wf
        self._version = version
        self._flows = MappingProxyType(flows)

    @classmethod
    def from_raw(cls, raw: Mapping) -> WorkflowMap:
        """Build from the packaged YAML layout, stamping every flow with the map version."""
        version = str(raw.get("workflowVersion", ""))
        if not version:
            raise ValueError("Workflow map has no workflowVersion")
        workflows = [
            Workflow.model_validate({**flow, "version": version})
            for flow in raw.get("flows", [])
        ]
        return cls(version, workflows)

    @property
    def version(self) -> str:
        return self._version

    def flow_ids(self) -> list[str]:
        return list(self._flows)

    def workflows(self) -> list[Workflow]:
        return list(self._flows.values())

    def get(self, flow_id: str) -> Workflow:
        """Raises NotFound for an unknown flow."""
        wf = self._flows.get(flow_id)
        if wf is None:
            raise NotFound(f"Workflow not found: {flow_id}", details={"flowId": flow_id})
        return wf

    def sync(self, flow_id: str, client_version: str) -> WorkflowSyncResponse:
        """Answer a client's cached-version check for one flow.

        Any version other than the server's is answered with the full
        workflow, including a client version that claims to be newer.
        """
        wf = self.get(flow_id)
        if client_version == self._version:
            logger.debug("workflow.sync %s: unchanged (%s)", flow_id, self._version)
            return WorkflowSyncResponse(status="unchanged", version=self._version, flow_id=flow_id)

        logger.info(
            "workflow.sync %s: client %s → server %s", flow_id, client_version, self._version
        )
        return WorkflowSyncResponse(
            status="updated", version=self._version, flow_id=flow_id, workflow=wf,
        )


# ── Process-wide snapshot ───────────────────────────────────────

_workflow_map: WorkflowMap | None = None
_map_lock = threading.Lock()


def get_workflow_map() -> WorkflowMap:
    """Return the current workflow map, loading the packaged one on first call."""
    global _workflow_map  # noqa: PLW0603
    snapshot = _workflow_map
    if snapshot is not None:
        return snapshot
    with _map_lock:
        if _workflow_map is None:
            from wizardplane.core.data import get_registry

            _workflow_map = WorkflowMap.from_raw(get_registry().workflow_map)
            logger.info(
                "Workflow map loaded: %d flows at %s",
                len(_workflow_map.flow_ids()), _workflow_map.version,
            )
        return _workflow_map


def replace_workflow_map(workflow_map: WorkflowMap) -> None:
    """Swap the whole map; bumps the version every client sees."""
    global _workflow_map  # noqa: PLW0603
    with _map_lock:
        _workflow_map = workflow_map
    logger.info("Workflow map replaced (version %s)", workflow_map.version)
