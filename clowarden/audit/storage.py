"""Audit tables for reconciliation runs and the changes they applied."""

from __future__ import annotations

import datetime as dt
import typing as typ

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

if typ.TYPE_CHECKING:
    from sqlalchemy.engine import Dialect
    from sqlalchemy.ext.asyncio import AsyncEngine


class TimezoneAwareRequiredError(ValueError):
    """Raised when a naive datetime is bound to an audit column."""

    @classmethod
    def for_column(cls) -> TimezoneAwareRequiredError:
        """Return an error for a naive audit timestamp."""
        return cls("audit timestamps must be timezone-aware")


class Base(DeclarativeBase):
    """Declarative base for audit models."""


class UTCDateTime(TypeDecorator[dt.datetime]):
    """DateTime wrapper that round-trips UTC tzinfo even on SQLite."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Force bound datetime values to UTC with tzinfo."""
        if value is None:
            return None
        if value.tzinfo is None:
            raise TimezoneAwareRequiredError.for_column()
        return value.astimezone(dt.UTC)

    def process_result_value(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Return UTC-aware datetimes regardless of driver behaviour."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.UTC)
        return value.astimezone(dt.UTC)


class ReconciliationRow(Base):
    """One apply run of an organization."""

    __tablename__ = "reconciliation"
    __table_args__ = (
        Index("ix_reconciliation_org_completed", "organization", "completed_at"),
    )

    reconciliation_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    organization: Mapped[str] = mapped_column(String(255), nullable=False)
    trigger: Mapped[str] = mapped_column(String(32), nullable=False)
    outcome: Mapped[str] = mapped_column(String(32), nullable=False)
    started_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), nullable=False)
    completed_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), nullable=False)
    error: Mapped[str | None] = mapped_column(Text(), default=None)
    pr_number: Mapped[int | None] = mapped_column(Integer, default=None)
    pr_created_by: Mapped[str | None] = mapped_column(String(255), default=None)
    pr_merged_by: Mapped[str | None] = mapped_column(String(255), default=None)
    pr_merged_at: Mapped[dt.datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )

    changes: Mapped[list[ChangeRow]] = relationship(
        back_populates="reconciliation",
        cascade="all, delete-orphan",
        order_by="ChangeRow.position",
    )


class ChangeRow(Base):
    """One change started by a run, with its outcome."""

    __tablename__ = "change"
    __table_args__ = (Index("ix_change_reconciliation", "reconciliation_id"),)

    change_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    reconciliation_id: Mapped[str] = mapped_column(
        ForeignKey("reconciliation.reconciliation_id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    service: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[str] = mapped_column(String(64), nullable=False)
    extra: Mapped[dict[str, typ.Any]] = mapped_column(JSON, nullable=False)
    keywords: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    applied_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), nullable=False)
    error: Mapped[str | None] = mapped_column(Text(), default=None)

    reconciliation: Mapped[ReconciliationRow] = relationship(back_populates="changes")


async def init_audit_storage(engine: AsyncEngine) -> None:
    """Create the audit tables if they are absent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
