"""On-demand reconciliation and validation of an organization.

``POST /organizations/{org}/reconcile`` applies the declared state now and
answers with the run's audit record. An optional body carries the merged
pull request behind the request::

    {"pull_request": {"number": 42, "created_by": "alice",
                      "merged_by": "bob", "merged_at": "2024-05-01T10:00:00Z"}}

``POST /organizations/{org}/validate`` with ``{"head_ref": "..."}`` reports
the changes a proposed configuration would make, without applying them.
Both reject a request with 409 while the organization is busy.
"""

from __future__ import annotations

import typing as typ

import falcon

from clowarden.api.errors import InvalidInputError
from clowarden.common.time import parse_utc_timestamp
from clowarden.reconciler import PullRequestInfo, TriggerKind
from clowarden.serialization import serialize_record, serialize_report

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from clowarden.reconciler import Reconciler

__all__ = ["ReconcileResource", "ValidateResource"]


def _optional_str(payload: dict[str, typ.Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None or isinstance(value, str):
        return value
    raise InvalidInputError("must be a string", field=f"pull_request.{key}")


def _parse_pull_request(body: object) -> PullRequestInfo | None:
    if not isinstance(body, dict) or body.get("pull_request") is None:
        return None
    payload = body["pull_request"]
    if not isinstance(payload, dict):
        raise InvalidInputError("must be an object", field="pull_request")
    number = payload.get("number")
    if not isinstance(number, int) or isinstance(number, bool) or number <= 0:
        raise InvalidInputError(
            "must be a positive integer", field="pull_request.number"
        )
    merged_at_raw = _optional_str(payload, "merged_at")
    try:
        merged_at = parse_utc_timestamp(merged_at_raw, field="pull_request.merged_at")
    except ValueError as exc:
        raise InvalidInputError(str(exc), field="pull_request.merged_at") from exc
    return PullRequestInfo(
        number=number,
        created_by=_optional_str(payload, "created_by"),
        merged_by=_optional_str(payload, "merged_by"),
        merged_at=merged_at,
    )


class ReconcileResource:
    """Resource applying an organization's declared state on demand."""

    def __init__(self, reconciler: Reconciler) -> None:
        """Configure the resource with the shared reconciler."""
        self._reconciler = reconciler

    async def on_post(self, req: Request, resp: Response, *, org: str) -> None:
        """Handle POST /organizations/{org}/reconcile.

        Raises
        ------
        OrganizationNotFoundError
            Mapped to 404 when ``org`` is not configured.
        ReconciliationInProgressError
            Mapped to 409 when a run already holds the organization.

        """
        body = await req.get_media(default_when_empty=None)
        pull_request = _parse_pull_request(body)
        record = await self._reconciler.reconcile(
            org,
            TriggerKind.PULL_REQUEST,
            pull_request=pull_request,
            wait=False,
        )
        resp.media = serialize_record(record)
        resp.status = falcon.HTTP_200


class ValidateResource:
    """Resource reporting the changes a configuration ref would make."""

    def __init__(self, reconciler: Reconciler) -> None:
        """Configure the resource with the shared reconciler."""
        self._reconciler = reconciler

    async def on_post(self, req: Request, resp: Response, *, org: str) -> None:
        """Handle POST /organizations/{org}/validate."""
        body = await req.get_media(default_when_empty=None)
        head_ref = body.get("head_ref") if isinstance(body, dict) else None
        if not isinstance(head_ref, str) or not head_ref.strip():
            raise InvalidInputError("must be a non-empty string", field="head_ref")
        report = await self._reconciler.validate(org, head_ref.strip(), wait=False)
        resp.media = serialize_report(report)
        resp.status = falcon.HTTP_200
