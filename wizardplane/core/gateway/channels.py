"""
IPC channels — the closed set of names that may cross the trust boundary.

Every channel has a direction and a payload schema:

    invoke  UI → control-plane; request schema, answered by a handler
    push    control-plane → UI; event schema, published on the bus

Adding a channel means adding a ``Channel`` member *and* its
``ChannelSpec``; the module refuses to import if the two disagree.
Request schemas forbid unknown fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from wizardplane.core.models.detection import DetectionResult
from wizardplane.core.models.environment import EnvSetResult, check_env_key, check_env_value
from wizardplane.core.models.navigation import NavigationState
from wizardplane.core.models.task import StepCompletion, TaskProgress


class Channel(str, Enum):
    # invoke
    CONFIG_GET = "config.get"
    CONFIG_LIST = "config.list"
    WORKFLOW_SYNC = "workflow.sync"
    WORKFLOW_LIST = "workflow.list"
    STEP_START = "step.start"
    STEP_COMPLETE = "step.complete"
    STEP_SKIP = "step.skip"
    STEP_LIST = "step.list"
    NAVIGATION_BACK = "navigation.back"
    NAVIGATION_NEXT = "navigation.next"
    NAVIGATION_STATE = "navigation.state"
    DETECTION_GET = "detection.get"
    ENV_GET = "env.get"
    ENV_SET = "env.set"
    ENV_REMOVE = "env.remove"
    # push
    STEP_PROGRESS = "step.progress"
    STEP_COMPLETED = "step.completed"
    NAVIGATION_CHANGED = "navigation.changed"
    DETECTION_RESULT = "detection.result"
    ENV_PERSISTED = "env.persisted"


class Direction(str, Enum):
    INVOKE = "invoke"
    PUSH = "push"


# ── Request schemas ─────────────────────────────────────────────


class Request(BaseModel):
    """Base for invoke payloads: camelCase, no unknown fields."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid", frozen=True,
    )


class EmptyRequest(Request):
    pass


class ConfigGetRequest(Request):
    id: str = Field(min_length=1)


class WorkflowSyncRequest(Request):
    flow_id: str = Field(min_length=1)
    version: str


class StepRequest(Request):
    step_id: str = Field(min_length=1)


class StepCompleteRequest(StepRequest):
    outcome: Literal["succeeded", "failed"]


class DetectionGetRequest(Request):
    component: str = Field(min_length=1)


class EnvKeysRequest(Request):
    keys: list[str] = Field(min_length=1)

    @field_validator("keys")
    @classmethod
    def _valid_keys(cls, keys: list[str]) -> list[str]:
        return [check_env_key(k) for k in keys]


class EnvSetRequest(Request):
    variables: dict[str, str] = Field(min_length=1)

    @field_validator("variables")
    @classmethod
    def _valid_variables(cls, variables: dict[str, str]) -> dict[str, str]:
        return {check_env_key(k): check_env_value(v) for k, v in variables.items()}


# ── Channel table ───────────────────────────────────────────────


@dataclass(frozen=True)
class ChannelSpec:
    direction: Direction
    schema: type[BaseModel]
    key_field: str | None = None    # push only: payload attribute used as the event key


CHANNELS: dict[Channel, ChannelSpec] = {
    Channel.CONFIG_GET: ChannelSpec(Direction.INVOKE, ConfigGetRequest),
    Channel.CONFIG_LIST: ChannelSpec(Direction.INVOKE, EmptyRequest),
    Channel.WORKFLOW_SYNC: ChannelSpec(Direction.INVOKE, WorkflowSyncRequest),
    Channel.WORKFLOW_LIST: ChannelSpec(Direction.INVOKE, EmptyRequest),
    Channel.STEP_START: ChannelSpec(Direction.INVOKE, StepRequest),
    Channel.STEP_COMPLETE: ChannelSpec(Direction.INVOKE, StepCompleteRequest),
    Channel.STEP_SKIP: ChannelSpec(Direction.INVOKE, StepRequest),
    Channel.STEP_LIST: ChannelSpec(Direction.INVOKE, EmptyRequest),
    Channel.NAVIGATION_BACK: ChannelSpec(Direction.INVOKE, EmptyRequest),
    Channel.NAVIGATION_NEXT: ChannelSpec(Direction.INVOKE, EmptyRequest),
    Channel.NAVIGATION_STATE: ChannelSpec(Direction.INVOKE, EmptyRequest),
    Channel.DETECTION_GET: ChannelSpec(Direction.INVOKE, DetectionGetRequest),
    Channel.ENV_GET: ChannelSpec(Direction.INVOKE, EnvKeysRequest),
    Channel.ENV_SET: ChannelSpec(Direction.INVOKE, EnvSetRequest),
    Channel.ENV_REMOVE: ChannelSpec(Direction.INVOKE, EnvKeysRequest),
    Channel.STEP_PROGRESS: ChannelSpec(Direction.PUSH, TaskProgress, "step_id"),
    Channel.STEP_COMPLETED: ChannelSpec(Direction.PUSH, StepCompletion, "step_id"),
    Channel.NAVIGATION_CHANGED: ChannelSpec(Direction.PUSH, NavigationState),
    Channel.DETECTION_RESULT: ChannelSpec(Direction.PUSH, DetectionResult, "component"),
    Channel.ENV_PERSISTED: ChannelSpec(Direction.PUSH, EnvSetResult, "target"),
}

_unmapped = set(Channel) - set(CHANNELS)
if _unmapped:
    raise RuntimeError(f"Channels without a spec: {sorted(c.value for c in _unmapped)}")

INVOKE_CHANNELS: frozenset[Channel] = frozenset(
    c for c, spec in CHANNELS.items() if spec.direction is Direction.INVOKE
)
PUSH_CHANNELS: frozenset[Channel] = frozenset(
    c for c, spec in CHANNELS.items() if spec.direction is Direction.PUSH
)
