"""Audit trail of reconciliation runs."""

from __future__ import annotations

from .sink import AuditSink, SqlAlchemyAuditSink
from .storage import Base, ChangeRow, ReconciliationRow, init_audit_storage

__all__ = [
    "AuditSink",
    "Base",
    "ChangeRow",
    "ReconciliationRow",
    "SqlAlchemyAuditSink",
    "init_audit_storage",
]
