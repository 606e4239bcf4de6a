"""
Detection store — latest DetectionResult per component.

Detectors live outside the control-plane; their results arrive through
adapter reporters.  A result replaces the stored one only when it is
newer (later ``detectedAt``), so a slow detector finishing late cannot
overwrite fresher data.  Accepted results are pushed on
``detection.result``.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

from wizardplane.core.errors import NotFound
from wizardplane.core.models.base import WireModel
from wizardplane.core.models.detection import DetectionResult

logger = logging.getLogger(__name__)


class DetectionStore:
    def __init__(self, *, emit: Callable[[str, WireModel], Any] | None = None) -> None:
        self._results: dict[str, DetectionResult] = {}
        self._lock = threading.Lock()
        self._emit = emit

    def record(self, result: DetectionResult) -> bool:
        """Store ``result`` if it supersedes the current one; returns whether it did."""
        with self._lock:
            current = self._results.get(result.component)
            if not result.supersedes(current):
                logger.debug(
                    "Ignoring older detection for %s (%s <= %s)",
                    result.component, result.detected_at, current.detected_at if current else None,
                )
                return False
            self._results[result.component] = result

        logger.info(
            "Detected %s: installed=%s version=%s compatible=%s",
            result.component, result.installed, result.version, result.compatible,
        )
        if self._emit is not None:
            try:
                self._emit("detection.result", result)
            except Exception as e:
                logger.warning("Failed to push detection.result: %s", e)
        return True

    def get(self, component: str) -> DetectionResult:
        """Raises NotFound when nothing was detected for ``component``."""
        with self._lock:
            result = self._results.get(component)
        if result is None:
            raise NotFound(
                f"No detection result for {component}", details={"component": component},
            )
        return result

    def all(self) -> list[DetectionResult]:
        with self._lock:
            return sorted(self._results.values(), key=lambda r: r.component)
