"""Health probe resources for liveness and readiness checks.

Readiness reports ``starting`` until the application has a reconciler to
serve requests with; liveness only proves the process answers.
"""

from __future__ import annotations

import typing as typ
from http import HTTPStatus

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

__all__ = ["HealthResource", "ReadyResource"]


class HealthResource:
    """Liveness probe resource returning ``{"status": "ok"}``."""

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Handle GET /health requests."""
        resp.media = {"status": "ok"}
        resp.status = HTTPStatus.OK


class ReadyResource:
    """Readiness probe resource.

    Parameters
    ----------
    ready
        Whether the domain endpoints are wired. A health-only app answers
        503 so it never receives reconciliation traffic.

    """

    def __init__(self, *, ready: bool = True) -> None:
        """Remember whether the application can serve domain requests."""
        self._ready = ready

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Handle GET /ready requests."""
        if self._ready:
            resp.media = {"status": "ready"}
            resp.status = HTTPStatus.OK
            return
        resp.media = {"status": "starting"}
        resp.status = HTTPStatus.SERVICE_UNAVAILABLE
