"""
IPC security gateway — channels, policy and dispatch.

    from wizardplane.core.gateway import Gateway, GatewayPolicy, Channel
"""

from wizardplane.core.gateway.channels import (
    CHANNELS,
    INVOKE_CHANNELS,
    PUSH_CHANNELS,
    Channel,
    ChannelSpec,
    Direction,
)
from wizardplane.core.gateway.gateway import Gateway, to_wire
from wizardplane.core.gateway.policy import CLI_ORIGIN, DEFAULT_ALLOWED_ORIGINS, GatewayPolicy

__all__ = [
    "CHANNELS",
    "CLI_ORIGIN",
    "Channel",
    "ChannelSpec",
    "DEFAULT_ALLOWED_ORIGINS",
    "Direction",
    "Gateway",
    "GatewayPolicy",
    "INVOKE_CHANNELS",
    "PUSH_CHANNELS",
    "to_wire",
]
