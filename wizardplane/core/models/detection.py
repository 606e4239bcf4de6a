"""
DetectionResult — typed output of an external detector.

Results are immutable.  A newer result for the same component
supersedes an older one; it never edits it.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import ConfigDict, Field

from wizardplane.core.models.base import WireModel


def _now() -> datetime:
    return datetime.now(UTC)


class DetectionResult(WireModel):
    model_config = ConfigDict(frozen=True)

    component: str
    installed: bool
    version: str | None = None
    path: str | None = None
    compatible: bool = False
    issues: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()
    detected_at: datetime = Field(default_factory=_now)

    def supersedes(self, other: DetectionResult | None) -> bool:
        """Whether this result should replace ``other`` for its component."""
        if other is None:
            return True
        return self.detected_at > other.detected_at
