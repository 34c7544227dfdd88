"""Audit sinks receiving one record per reconciliation run."""

from __future__ import annotations

import typing as typ

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from .storage import ChangeRow, ReconciliationRow

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from clowarden.reconciler import ReconciliationRecord


@typ.runtime_checkable
class AuditSink(typ.Protocol):
    """Destination of reconciliation records."""

    async def record(self, record: ReconciliationRecord) -> None:
        """Persist ``record``."""
        ...


def _to_row(record: ReconciliationRecord) -> ReconciliationRow:
    pull_request = record.pull_request
    row = ReconciliationRow(
        reconciliation_id=record.id,
        organization=record.organization,
        trigger=record.trigger.value,
        outcome=record.outcome.value,
        started_at=record.started_at,
        completed_at=record.completed_at,
        error=record.error,
        pr_number=pull_request.number if pull_request else None,
        pr_created_by=pull_request.created_by if pull_request else None,
        pr_merged_by=pull_request.merged_by if pull_request else None,
        pr_merged_at=pull_request.merged_at if pull_request else None,
    )
    row.changes = [
        ChangeRow(
            change_id=outcome.change.id,
            position=position,
            service=outcome.change.service,
            kind=outcome.change.kind.value,
            extra=outcome.change.extra(),
            keywords=outcome.change.keywords(),
            applied_at=outcome.applied_at,
            error=outcome.error,
        )
        for position, outcome in enumerate(record.changes_applied)
    ]
    return row


class SqlAlchemyAuditSink:
    """Stores reconciliation records in the ``reconciliation`` and ``change`` tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Use ``session_factory`` for every write and query."""
        self._session_factory = session_factory

    async def record(self, record: ReconciliationRecord) -> None:
        """Insert the run and its changes in one transaction."""
        async with self._session_factory() as session, session.begin():
            session.add(_to_row(record))

    async def list_reconciliations(
        self, organization: str, *, limit: int = 20
    ) -> list[ReconciliationRow]:
        """Return the most recent runs of ``organization`` with their changes."""
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(ReconciliationRow)
                .where(ReconciliationRow.organization == organization)
                .options(selectinload(ReconciliationRow.changes))
                .order_by(ReconciliationRow.completed_at.desc())
                .limit(limit)
            )
            return list(rows.all())
