"""Adapters — bindings to external build tools.

Public re-exports for convenient access.
"""

from lotadeploy.adapters.base import Adapter, ExecutionContext
from lotadeploy.adapters.mock import MockAdapter
from lotadeploy.adapters.registry import AdapterRegistry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
]
