"""Service handler protocol, registry, and platform implementations."""

from __future__ import annotations

from .protocol import ServiceHandler, ServiceState
from .registry import HandlerRegistry, ServiceRegistryError

__all__ = [
    "HandlerRegistry",
    "ServiceHandler",
    "ServiceRegistryError",
    "ServiceState",
]
