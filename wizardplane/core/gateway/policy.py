"""
Gateway policy — channel whitelists and the origin allow-list.

Built once at startup and frozen; there is no API to widen it at
runtime.

Origin entries come in two forms:

    app://renderer/index.html   has a path → the caller's origin must
                                equal it exactly (an explicit frame URL)
    http://localhost:5173       no path   → scheme, host and port must
                                match; any path under it is accepted
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from urllib.parse import urlsplit

from wizardplane.core.gateway.channels import (
    INVOKE_CHANNELS,
    PUSH_CHANNELS,
    Channel,
    Direction,
)

logger = logging.getLogger(__name__)

CLI_ORIGIN = "app://cli"

DEFAULT_ALLOWED_ORIGINS: tuple[str, ...] = (
    "app://renderer/index.html",
    "file://",
    CLI_ORIGIN,
)


def _authority(url: str) -> tuple[str, str, int | None] | None:
    """(scheme, host, port) of ``url``, or None when it cannot be an origin."""
    try:
        parts = urlsplit(url.strip())
        port = parts.port
    except ValueError:
        return None
    if not parts.scheme:
        return None
    return parts.scheme.lower(), (parts.hostname or "").lower(), port


def _has_path(entry: str) -> bool:
    return urlsplit(entry).path not in ("", "/")


@dataclass(frozen=True)
class GatewayPolicy:
    invoke_channels: frozenset[Channel]
    push_channels: frozenset[Channel]
    allowed_origins: tuple[str, ...]

    @classmethod
    def default(cls, allowed_origins: Iterable[str] | None = None) -> GatewayPolicy:
        origins = tuple(allowed_origins) if allowed_origins is not None else DEFAULT_ALLOWED_ORIGINS
        for entry in origins:
            if _authority(entry) is None:
                raise ValueError(f"Invalid allowed origin: {entry!r}")
        return cls(
            invoke_channels=INVOKE_CHANNELS,
            push_channels=PUSH_CHANNELS,
            allowed_origins=origins,
        )

    def channel_for(self, name: str, direction: Direction) -> Channel | None:
        """The whitelisted channel called ``name`` in ``direction``, else None."""
        try:
            channel = Channel(name)
        except ValueError:
            return None
        allowed = self.invoke_channels if direction is Direction.INVOKE else self.push_channels
        return channel if channel in allowed else None

    def origin_allowed(self, origin: str | None) -> bool:
        if not origin:
            return False
        caller = _authority(origin)
        if caller is None:
            return False
        for entry in self.allowed_origins:
            if _has_path(entry):
                if origin == entry:
                    return True
            elif caller == _authority(entry):
                return True
        return False
