"""
Packaged data registry for the static catalogs.

Loads the shared configuration catalog and the workflow map from
``wizardplane/core/data/catalogs/`` once at first access and caches
them for the process lifetime.  The catalog and workflow services build
their immutable snapshots from this raw data.

Usage::

    from wizardplane.core.data import get_registry

    raw_entries = get_registry().shared_config   # dict[str, dict]
    raw_flows = get_registry().workflow_map      # {"workflowVersion": ..., "flows": [...]}
"""

from __future__ import annotations

import json
import logging
from functools import cached_property
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_DATA_DIR = Path(__file__).parent / "catalogs"


def _load_json(name: str, data_dir: Path) -> dict:
    path = data_dir / name
    if not path.is_file():
        logger.warning("Data file not found: %s", path)
        return {}
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _load_yaml(name: str, data_dir: Path) -> dict:
    path = data_dir / name
    if not path.is_file():
        logger.warning("Data file not found: %s", path)
        return {}
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


class DataRegistry:
    """Lazy loader for the packaged catalogs.

    Each property reads its file on first access.  Pass ``data_dir`` to
    load an alternative catalog set (tests, staged rollouts).
    """

    def __init__(self, data_dir: Path | None = None) -> None:
        self._data_dir = data_dir or _DATA_DIR

    @cached_property
    def shared_config(self) -> dict[str, dict]:
        """Raw shared configuration entries keyed by id."""
        data = _load_json("shared_config.json", self._data_dir)
        logger.debug("Loaded %d shared config entries", len(data))
        return data

    @cached_property
    def workflow_map(self) -> dict:
        """Raw workflow map: ``workflowVersion`` plus the ``flows`` list."""
        data = _load_yaml("workflows.yml", self._data_dir)
        logger.debug(
            "Loaded %d workflows (version %s)",
            len(data.get("flows", [])), data.get("workflowVersion"),
        )
        return data


# ── Module-level singleton ───────────────────────────────────────

_registry: DataRegistry | None = None


def get_registry() -> DataRegistry:
    """Return the process-level DataRegistry singleton."""
    global _registry  # noqa: PLW0603
    if _registry is None:
        _registry = DataRegistry()
    return _registry
