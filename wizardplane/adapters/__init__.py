"""Adapters — bindings between wizard steps and external tools.

Public re-exports for convenient access.
"""

from wizardplane.adapters.base import StepAdapter, StepReceipt
from wizardplane.adapters.mock import MockAdapter
from wizardplane.adapters.registry import AdapterRegistry

__all__ = [
    "AdapterRegistry",
    "MockAdapter",
    "StepAdapter",
    "StepReceipt",
]
