"""Name-keyed registry of service handlers."""

from __future__ import annotations

import typing as typ

from .protocol import ServiceHandler

if typ.TYPE_CHECKING:
    import collections.abc as cabc


class ServiceRegistryError(LookupError):
    """Raised for invalid registrations and unknown service lookups."""

    @classmethod
    def duplicate(cls, name: str) -> ServiceRegistryError:
        """Return an error for a second handler with the same name."""
        return cls(f"service handler {name} is already registered")

    @classmethod
    def unknown(cls, name: str) -> ServiceRegistryError:
        """Return an error for a lookup of an unregistered service."""
        return cls(f"no service handler registered as {name}")

    @classmethod
    def not_a_handler(cls, handler: object) -> ServiceRegistryError:
        """Return an error for an object missing the handler protocol."""
        return cls(f"{type(handler).__name__} does not implement ServiceHandler")


class HandlerRegistry:
    """Service handlers available to the reconciler, keyed by name.

    Built once at startup and injected, so tests can register fakes.
    Iteration follows registration order.
    """

    def __init__(self, handlers: cabc.Iterable[ServiceHandler] = ()) -> None:
        """Register each handler in ``handlers``."""
        self._handlers: dict[str, ServiceHandler] = {}
        for handler in handlers:
            self.register(handler)

    def register(self, handler: ServiceHandler) -> None:
        """Add a handler under its own name."""
        if not isinstance(handler, ServiceHandler):
            raise ServiceRegistryError.not_a_handler(handler)
        if handler.name in self._handlers:
            raise ServiceRegistryError.duplicate(handler.name)
        self._handlers[handler.name] = handler

    def get(self, name: str) -> ServiceHandler:
        """Return the handler registered as ``name``."""
        try:
            return self._handlers[name]
        except KeyError as exc:
            raise ServiceRegistryError.unknown(name) from exc

    def names(self) -> list[str]:
        """Return the registered service names."""
        return list(self._handlers)

    def __iter__(self) -> cabc.Iterator[ServiceHandler]:
        """Iterate handlers in registration order."""
        return iter(self._handlers.values())

    def __len__(self) -> int:
        """Return the number of registered handlers."""
        return len(self._handlers)
