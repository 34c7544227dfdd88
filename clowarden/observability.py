"""Structured lifecycle events for reconciliation runs.

Every event is a single log line of the form ``[event.type] key=value ...``
so log aggregators can filter on the bracketed type and parse the rest.
"""

from __future__ import annotations

import enum
import typing as typ

from .logging import get_logger, log_error, log_info, log_warning

if typ.TYPE_CHECKING:
    import datetime as dt

    from .changes import ChangeOutcome
    from .reconciler import ReconciliationRecord, ValidationReport

logger = get_logger(__name__)


class ReconcilerEventType(enum.StrEnum):
    """Structured log event types for reconciliation observability."""

    RUN_STARTED = "reconciliation.run.started"
    RUN_COMPLETED = "reconciliation.run.completed"
    RUN_FAILED = "reconciliation.run.failed"
    CHANGE_FAILED = "reconciliation.change.failed"
    VALIDATION_COMPLETED = "reconciliation.validation.completed"


class ReconcilerEventLogger:
    """Emit reconciliation events through the femtologging wrappers.

    Successful runs log at INFO, cancelled runs and runs that completed with
    failed changes at WARNING, and failed runs at ERROR.
    """

    def log_run_started(
        self,
        run_id: str,
        organization: str,
        trigger: str,
        started_at: dt.datetime,
    ) -> None:
        """Log the start of an apply run."""
        log_info(
            logger,
            "[%s] run_id=%s organization=%s trigger=%s started_at=%s",
            ReconcilerEventType.RUN_STARTED,
            run_id,
            organization,
            trigger,
            started_at.isoformat(),
        )

    def log_run_completed(self, record: ReconciliationRecord) -> None:
        """Log a finished run; the level follows the run outcome."""
        if record.outcome == "failed":
            self.log_run_failed(record)
            return
        failed = sum(1 for outcome in record.changes_applied if not outcome.succeeded)
        emit = log_warning if failed or record.error is not None else log_info
        emit(
            logger,
            "[%s] run_id=%s organization=%s trigger=%s outcome=%s "
            "duration_seconds=%.3f changes_applied=%d changes_failed=%d",
            ReconcilerEventType.RUN_COMPLETED,
            record.id,
            record.organization,
            record.trigger,
            record.outcome,
            record.duration.total_seconds(),
            len(record.changes_applied),
            failed,
        )

    def log_run_failed(self, record: ReconciliationRecord) -> None:
        """Log a run that ended without applying its changes."""
        log_error(
            logger,
            "[%s] run_id=%s organization=%s trigger=%s duration_seconds=%.3f "
            "error_message=%s",
            ReconcilerEventType.RUN_FAILED,
            record.id,
            record.organization,
            record.trigger,
            record.duration.total_seconds(),
            record.error,
        )

    def log_change_failed(self, organization: str, outcome: ChangeOutcome) -> None:
        """Log one change that could not be applied."""
        log_warning(
            logger,
            "[%s] organization=%s change_id=%s service=%s kind=%s error_message=%s",
            ReconcilerEventType.CHANGE_FAILED,
            organization,
            outcome.change.id,
            outcome.change.service,
            outcome.change.kind,
            outcome.error,
        )

    def log_validation_completed(self, report: ValidationReport) -> None:
        """Log the result of validating a configuration change."""
        log_info(
            logger,
            "[%s] organization=%s head_ref=%s base_ref=%s valid=%s "
            "base_ref_config_status=%s changes=%d",
            ReconcilerEventType.VALIDATION_COMPLETED,
            report.organization,
            report.head_ref,
            report.base_ref,
            not report.invalid,
            report.base_ref_config_status,
            report.change_count,
        )
