"""
Shared configuration catalog — read-only registry of named entries.

The catalog is a process-wide immutable snapshot.  It is built once
from the packaged data at first use; the only way to change it is to
swap in a whole new snapshot with ``replace_catalog``, so a reader never
sees a half-updated catalog.

Callers outside the control-plane reach it only through the gateway
(``config.get`` / ``config.list``), which checks their origin first.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from types import MappingProxyType

from wizardplane.core.errors import NotFound
from wizardplane.core.models.catalog import SharedConfigEntry

logger = logging.getLogger(__name__)


class SharedConfigCatalog:
    """Immutable snapshot of shared configuration entries."""

    def __init__(self, entries: Mapping[str, SharedConfigEntry]) -> None:
        self._entries = MappingProxyType(dict(entries))

    @classmethod
    def from_raw(cls, raw: Mapping[str, dict]) -> SharedConfigCatalog:
        """Build a catalog from raw dicts (camelCase keys, as shipped)."""
        entries: dict[str, SharedConfigEntry] = {}
        for key, data in raw.items():
            entry = SharedConfigEntry.model_validate(data)
            if entry.id != key:
                raise ValueError(f"Catalog key {key!r} does not match entry id {entry.id!r}")
            entries[key] = entry
        return cls(entries)

    def get(self, entry_id: str) -> SharedConfigEntry:
        """Look up one entry.

        Raises:
            NotFound: If no entry has this id.
        """
        entry = self._entries.get(entry_id)
        if entry is None:
            raise NotFound(f"Config entry not found: {entry_id}", details={"id": entry_id})
        return entry

    def value(self, entry_id: str, default: object = None) -> object:
        """Convenience: the entry's value, or ``default`` when absent."""
        entry = self._entries.get(entry_id)
        return entry.value if entry is not None else default

    def list(self) -> list[SharedConfigEntry]:
        return sorted(self._entries.values(), key=lambda e: e.id)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


# ── Process-wide snapshot ───────────────────────────────────────

_catalog: SharedConfigCatalog | None = None
_catalog_lock = threading.Lock()


def get_catalog() -> SharedConfigCatalog:
    """Return the current catalog snapshot, loading it on first call."""
    global _catalog  # noqa: PLW0603
    snapshot = _catalog
    if snapshot is not None:
        return snapshot
    with _catalog_lock:
        if _catalog is None:
            from wizardplane.core.data import get_registry

            _catalog = SharedConfigCatalog.from_raw(get_registry().shared_config)
            logger.info("Shared config catalog loaded (%d entries)", len(_catalog))
        return _catalog


def replace_catalog(catalog: SharedConfigCatalog) -> None:
    """Swap the whole snapshot (restart-style reload)."""
    global _catalog  # noqa: PLW0603
    with _catalog_lock:
        _catalog = catalog
    logger.info("Shared config catalog replaced (%d entries)", len(catalog))
