"""API exceptions and the Falcon handlers translating engine errors.

Every error body has a ``title`` and a ``description``; invalid input also
names the offending ``field`` when there is one.

Usage
-----
Register the handlers on the Falcon app::

    for error, handler in ERROR_HANDLERS.items():
        app.add_error_handler(error, handler)

"""

from __future__ import annotations

import typing as typ

import falcon

from clowarden.errors import OrganizationNotFoundError, ReconciliationInProgressError

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

__all__ = [
    "ERROR_HANDLERS",
    "RETRY_AFTER_S",
    "InvalidInputError",
    "handle_invalid_input",
    "handle_organization_not_found",
    "handle_reconciliation_in_progress",
]

# Seconds a client should wait before retrying a busy organization
RETRY_AFTER_S = 30


class InvalidInputError(Exception):
    """A request body or parameter that cannot be used.

    Attributes
    ----------
    reason
        What is wrong with the input.
    field
        Name of the offending field, if a single one is to blame.

    """

    def __init__(self, reason: str, *, field: str | None = None) -> None:
        """Store the reason and field; the message combines both."""
        self.reason = reason
        self.field = field
        super().__init__(reason if field is None else f"{field}: {reason}")


def _problem(
    resp: Response, status: str, title: str, description: str, **extra: str
) -> None:
    resp.status = status
    resp.media = {"title": title, "description": description, **extra}


async def handle_organization_not_found(
    _req: Request,
    resp: Response,
    ex: OrganizationNotFoundError,
    _params: dict[str, typ.Any],
) -> None:
    """Answer 404 for organizations missing from the deployment config."""
    _problem(resp, falcon.HTTP_404, "Organization not found", str(ex))


async def handle_reconciliation_in_progress(
    _req: Request,
    resp: Response,
    ex: ReconciliationInProgressError,
    _params: dict[str, typ.Any],
) -> None:
    """Answer a retryable 409 while another run holds the organization."""
    _problem(resp, falcon.HTTP_409, "Reconciliation in progress", str(ex))
    resp.set_header("Retry-After", str(RETRY_AFTER_S))


async def handle_invalid_input(
    _req: Request,
    resp: Response,
    ex: InvalidInputError,
    _params: dict[str, typ.Any],
) -> None:
    """Answer 400 with the reason and, when known, the field.

    Parameters
    ----------
    _req
        Falcon request (unused).
    resp
        Response receiving the error body.
    ex
        The rejected input.
    _params
        URI template parameters (unused).

    """
    extra = {"field": ex.field} if ex.field is not None else {}
    _problem(resp, falcon.HTTP_400, "Invalid input", ex.reason, **extra)


ERROR_HANDLERS: dict[type[Exception], typ.Callable[..., typ.Awaitable[None]]] = {
    InvalidInputError: handle_invalid_input,
    OrganizationNotFoundError: handle_organization_not_found,
    ReconciliationInProgressError: handle_reconciliation_in_progress,
}
