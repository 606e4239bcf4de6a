"""
Environment variable models and key/value rules.

Keys go into regexes and shell files, so they are restricted to the
portable identifier form.  Values may not span lines.
"""

from __future__ import annotations

import re
from enum import Enum

from pydantic import ConfigDict, Field

from wizardplane.core.errors import ErrorInfo
from wizardplane.core.models.base import WireModel

ENV_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def check_env_key(key: str) -> str:
    """Return ``key`` unchanged, or raise ValueError."""
    if not ENV_KEY_RE.match(key):
        raise ValueError(f"Invalid environment variable name: {key!r}")
    return key


def check_env_value(value: str) -> str:
    """Return ``value`` unchanged, or raise ValueError."""
    if any(ch in value for ch in ("\n", "\r", "\x00")):
        raise ValueError("Environment variable values cannot contain newlines or NUL")
    return value


class EnvSource(str, Enum):
    PROCESS = "process"
    SHELL_CONFIG_FILE = "shellConfigFile"


class EnvironmentVariable(WireModel):
    model_config = ConfigDict(frozen=True)

    key: str
    value: str
    source: EnvSource
    path: str | None = None       # file the value came from


class EnvSetResult(WireModel):
    """Outcome of ``set``; ``warning`` carries PersistenceDegraded."""

    target: str
    updated: list[str] = Field(default_factory=list)
    appended: list[str] = Field(default_factory=list)
    reloaded: bool = False
    warning: ErrorInfo | None = None


class EnvRemoveResult(WireModel):
    """Outcome of ``remove``; one failure entry per file that could not be edited."""

    removed_from: list[str] = Field(default_factory=list)
    failures: list[ErrorInfo] = Field(default_factory=list)
