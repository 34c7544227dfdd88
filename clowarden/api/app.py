"""Application factory for the CLOWarden Falcon ASGI application.

Usage
-----
Create a health-only app (no reconciler)::

    app = create_app()

Create a full app with the organization endpoints::

    from clowarden.api.app import AppDependencies, create_app

    app = create_app(AppDependencies(reconciler=reconciler))

"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

import falcon.asgi

from clowarden.api.errors import ERROR_HANDLERS
from clowarden.api.health.resources import HealthResource, ReadyResource

if typ.TYPE_CHECKING:
    from clowarden.reconciler import Reconciler

__all__ = ["AppDependencies", "create_app"]


@dc.dataclass(frozen=True, slots=True)
class AppDependencies:
    """Dependencies for the Falcon ASGI application.

    Attributes
    ----------
    reconciler
        Reconciler shared with the background jobs. Without it only the
        health endpoints are registered.

    """

    reconciler: Reconciler | None = None


def create_app(
    dependencies: AppDependencies | None = None,
) -> falcon.asgi.App:
    """Create and configure the Falcon ASGI application.

    Parameters
    ----------
    dependencies
        Optional application dependencies. When ``None``, or when no
        reconciler is given, only ``/health`` and ``/ready`` are available.

    Returns
    -------
    falcon.asgi.App
        Configured Falcon ASGI application.

    """
    reconciler = dependencies.reconciler if dependencies is not None else None
    app = falcon.asgi.App()  # type: ignore[no-matching-overload]  # Falcon stubs

    app.add_route("/health", HealthResource())
    app.add_route("/ready", ReadyResource(ready=reconciler is not None))

    if reconciler is not None:
        from clowarden.api.organizations.resources import (
            ReconcileResource,
            ValidateResource,
        )

        app.add_route("/organizations/{org}/reconcile", ReconcileResource(reconciler))
        app.add_route("/organizations/{org}/validate", ValidateResource(reconciler))

    for error, handler in ERROR_HANDLERS.items():
        app.add_error_handler(error, handler)

    return app
