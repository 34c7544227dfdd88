"""JSON-compatible views of reconciliation records and validation reports.

Shared by the HTTP API and the Dramatiq actors so both surfaces answer
with the same shape.
"""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    from clowarden.reconciler import ReconciliationRecord, ValidationReport

__all__ = ["serialize_record", "serialize_report"]


def serialize_record(record: ReconciliationRecord) -> dict[str, typ.Any]:
    """Serialize a reconciliation record to a JSON-compatible dict."""
    pull_request = record.pull_request
    return {
        "reconciliation_id": record.id,
        "organization": record.organization,
        "trigger": record.trigger.value,
        "outcome": record.outcome.value,
        "started_at": record.started_at.isoformat(),
        "completed_at": record.completed_at.isoformat(),
        "error": record.error,
        "pr_number": pull_request.number if pull_request else None,
        "pr_created_by": pull_request.created_by if pull_request else None,
        "pr_merged_by": pull_request.merged_by if pull_request else None,
        "pr_merged_at": (
            pull_request.merged_at.isoformat()
            if pull_request and pull_request.merged_at
            else None
        ),
        "changes": [
            {
                "change_id": outcome.change.id,
                "service": outcome.change.service,
                "kind": outcome.change.kind.value,
                "extra": outcome.change.extra(),
                "applied_at": outcome.applied_at.isoformat(),
                "error": outcome.error,
            }
            for outcome in record.changes_applied
        ],
    }


def serialize_report(report: ValidationReport) -> dict[str, typ.Any]:
    """Serialize a validation report to a JSON-compatible dict."""
    return {
        "organization": report.organization,
        "head_ref": report.head_ref,
        "base_ref": report.base_ref,
        "valid": not report.invalid,
        "issues": list(report.issues),
        "error": report.error,
        "base_ref_config_status": report.base_ref_config_status.value,
        "needs_manual_review": report.needs_manual_review,
        "services": {
            service.service: [
                {
                    "kind": change.kind.value,
                    "extra": change.extra(),
                    "description": change.template_format(),
                }
                for change in service.changes
            ]
            for service in report.services
        },
    }
