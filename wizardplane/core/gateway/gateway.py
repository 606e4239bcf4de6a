"""
Security gateway — the single enforcement point between UI and core.

    invoke(channel, origin, payload)
        1. channel on the invoke whitelist    else Forbidden
        2. origin on the allow-list           else Forbidden
        3. payload matches the channel schema else InvalidArgument
        → handler(request); its WizardError propagates unchanged

    emit(channel, payload)
        channel on the push whitelist and payload valid → EventBus

Handlers return models; the gateway turns them into wire dicts, so the
HTTP layer and the CLI see the same camelCase JSON.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel, ValidationError

from wizardplane.core.errors import Forbidden, InvalidArgument
from wizardplane.core.gateway.channels import CHANNELS, Channel, Direction
from wizardplane.core.gateway.policy import GatewayPolicy
from wizardplane.core.models.base import WireModel
from wizardplane.core.services.event_bus import EventBus

logger = logging.getLogger(__name__)

Handler = Callable[[BaseModel], Any]


def to_wire(value: Any) -> Any:
    """Recursively convert models (and containers of them) to JSON-ready data."""
    if isinstance(value, WireModel):
        return value.to_wire()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(value, dict):
        return {k: to_wire(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_wire(v) for v in value]
    return value


def _validation_details(e: ValidationError) -> list[dict[str, str]]:
    return [
        {"loc": ".".join(str(p) for p in err["loc"]) or "(payload)", "msg": err["msg"]}
        for err in e.errors(include_url=False)
    ]


class Gateway:
    """Authorizes, validates and dispatches every cross-boundary call."""

    def __init__(
        self,
        policy: GatewayPolicy,
        handlers: Mapping[Channel, Handler],
        bus: EventBus | None = None,
    ) -> None:
        missing = policy.invoke_channels - handlers.keys()
        extra = handlers.keys() - policy.invoke_channels
        if missing or extra:
            raise ValueError(
                "Handlers must cover exactly the invoke channels "
                f"(missing={sorted(c.value for c in missing)}, "
                f"extra={sorted(c.value for c in extra)})"
            )
        self.policy = policy
        self._handlers = dict(handlers)
        self.bus = bus

    def invoke(self, channel: str, caller_origin: str | None, payload: Any = None) -> Any:
        ch = self.policy.channel_for(channel, Direction.INVOKE)
        if ch is None:
            logger.warning("Rejected call to channel %r (not invocable)", channel)
            raise Forbidden(f"Channel not allowed: {channel}", details={"channel": channel})

        if not self.policy.origin_allowed(caller_origin):
            logger.warning("Rejected %s from origin %r", channel, caller_origin)
            raise Forbidden(
                f"Origin not allowed: {caller_origin or '(none)'}",
                details={"origin": caller_origin, "channel": channel},
            )

        request = self._validate(ch, {} if payload is None else payload)
        logger.debug("invoke %s from %s", channel, caller_origin)
        return to_wire(self._handlers[ch](request))

    def emit(self, channel: str, payload: BaseModel | Mapping[str, Any]) -> dict | None:
        """Publish a push event; returns the bus event (None without a bus)."""
        ch = self.policy.channel_for(channel, Direction.PUSH)
        if ch is None:
            raise Forbidden(f"Channel not allowed for push: {channel}", details={"channel": channel})

        spec = CHANNELS[ch]
        if isinstance(payload, spec.schema):
            model = payload
        else:
            raw = payload.model_dump() if isinstance(payload, BaseModel) else payload
            model = self._validate(ch, raw)

        if self.bus is None:
            return None
        key = str(getattr(model, spec.key_field, "")) if spec.key_field else ""
        return self.bus.publish(ch.value, key=key, data=to_wire(model))

    @staticmethod
    def _validate(ch: Channel, payload: Any) -> BaseModel:
        if not isinstance(payload, Mapping):
            raise InvalidArgument(
                f"Payload for {ch.value} must be an object, got {type(payload).__name__}",
            )
        try:
            return CHANNELS[ch].schema.model_validate(dict(payload))
        except ValidationError as e:
            details = _validation_details(e)
            raise InvalidArgument(
                f"Invalid payload for {ch.value}: "
                + "; ".join(f"{d['loc']}: {d['msg']}" for d in details),
                details={"errors": details},
            ) from e
