"""
Error kinds — the typed failures of the control-plane.

Every error carries a stable machine-readable ``kind`` plus a
human-readable message.  Core components raise these; the transport
layers (HTTP, CLI) turn them into envelopes or exit codes:

    try:
        gateway.invoke("config.get", origin, {"id": "network.proxy"})
    except WizardError as e:
        return {"ok": False, "error": e.to_dict()}

``PersistenceDegraded`` is never raised by the environment manager;
it is reported as a secondary outcome on ``EnvSetResult`` via
``to_info()``.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class ErrorInfo(BaseModel):
    """Serialized form of an error kind (also used for warnings)."""

    kind: str
    message: str
    details: dict[str, Any] | None = None


class WizardError(Exception):
    """Base class for all control-plane errors."""

    kind: str = "Internal"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_info(self) -> ErrorInfo:
        return ErrorInfo(kind=self.kind, message=self.message, details=self.details)

    def to_dict(self) -> dict[str, Any]:
        return self.to_info().model_dump(exclude_none=True)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.message!r}>"


# ── Gateway ─────────────────────────────────────────────────────


class Forbidden(WizardError):
    """Origin or channel not authorized."""

    kind = "Forbidden"


class InvalidArgument(WizardError):
    """Malformed payload or argument."""

    kind = "InvalidArgument"


class NotFound(WizardError):
    """Unknown config id, flow, step or component."""

    kind = "NotFound"


# ── State machine rules ─────────────────────────────────────────


class InvalidTransition(WizardError):
    kind = "InvalidTransition"


class DependencyNotSatisfied(WizardError):
    kind = "DependencyNotSatisfied"


class NotSkippable(WizardError):
    kind = "NotSkippable"


class Busy(WizardError):
    """Session lock not obtained within the configured busy timeout."""

    kind = "Busy"


# ── Persistence ─────────────────────────────────────────────────


class PersistenceDegraded(WizardError):
    """Shell re-source failed; the data is still durably written."""

    kind = "PersistenceDegraded"


class PersistenceFailed(WizardError):
    """Writing a shell config file failed."""

    kind = "PersistenceFailed"


class ConfigError(Exception):
    """Raised when the wizard settings file is invalid or unreadable."""


# HTTP status per kind, used by the web layer.
HTTP_STATUS: dict[str, int] = {
    Forbidden.kind: 403,
    NotFound.kind: 404,
    InvalidArgument.kind: 400,
    InvalidTransition.kind: 409,
    DependencyNotSatisfied.kind: 409,
    NotSkippable.kind: 409,
    Busy.kind: 409,
    PersistenceFailed.kind: 500,
    PersistenceDegraded.kind: 200,
}
