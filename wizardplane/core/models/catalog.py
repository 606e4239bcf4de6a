"""
SharedConfigEntry — a named configuration value with provenance.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import ConfigDict

from wizardplane.core.models.base import WireModel

SourceModule = Literal["main", "renderer", "preload", "shared", "scripts"]


class SharedConfigEntry(WireModel):
    model_config = ConfigDict(frozen=True)

    id: str
    value: Any
    description: str
    owner: str
    source_module: SourceModule
    last_validated_at: str
    tags: tuple[str, ...] = ()
    version: str | None = None    # only for entries carrying download info
