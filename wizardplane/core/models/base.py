"""
Wire model base — camelCase on the wire, snake_case in Python.

The UI process speaks camelCase (``flowId``, ``dependsOn``); Python
code reads attributes by their snake_case names.  Both spellings are
accepted on input.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for every model that crosses the gateway."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys, ``None`` fields dropped."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
