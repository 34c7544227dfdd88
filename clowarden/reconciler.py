"""Reconciler: drives validation and apply runs for an organization.

An apply run walks through these states::

    idle -> fetching-desired -> fetching-actual -> diffing -> applying
         -> completed -> idle

A validation run diffs the configuration proposed at a head ref against the
one at the organization's base branch and never touches the live service::

    idle -> fetching-desired -> diffing -> validating -> completed -> idle

Runs for one organization are serialized through :class:`OrganizationLocks`;
every apply run ends with a :class:`ReconciliationRecord` handed to the
audit sink, whether it succeeded or not.
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import typing as typ
import uuid

from . import differ
from .applier import apply_all
from .common.time import utcnow
from .errors import ConfigurationError, StateFetchError
from .logging import get_logger, log_exception, log_info
from .observability import ReconcilerEventLogger
from .services import ServiceState

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from .audit import AuditSink
    from .changes import Change, ChangeOutcome
    from .config import ClowardenConfig, OrganizationConfig
    from .desired import DesiredState, DesiredStateLoader
    from .locks import OrganizationLocks
    from .services import HandlerRegistry, ServiceHandler

logger = get_logger(__name__)

CANCELLED_ERROR = "reconciliation cancelled"


class RunState(enum.StrEnum):
    """Where an organization's current run is."""

    IDLE = "idle"
    FETCHING_DESIRED = "fetching-desired"
    FETCHING_ACTUAL = "fetching-actual"
    DIFFING = "diffing"
    VALIDATING = "validating"
    APPLYING = "applying"
    COMPLETED = "completed"


class TriggerKind(enum.StrEnum):
    """What started an apply run."""

    PULL_REQUEST = "pull-request"
    PERIODIC = "periodic"


class RunOutcome(enum.StrEnum):
    """How an apply run ended."""

    SUCCESS = "success"
    PARTIAL_ERRORS = "partial-errors"
    CANCELLED = "cancelled"
    FAILED = "failed"


class BaseRefConfigStatus(enum.StrEnum):
    """Whether the configuration at the base ref could be validated."""

    VALID = "valid"
    INVALID = "invalid"
    UNKNOWN = "unknown"


@dataclasses.dataclass(frozen=True, slots=True)
class PullRequestInfo:
    """Merged pull request that triggered a run."""

    number: int
    created_by: str | None = None
    merged_by: str | None = None
    merged_at: dt.datetime | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class ReconciliationRecord:
    """Audit record of one apply run.

    Attributes
    ----------
    id
        Unique run identifier.
    organization
        Organization reconciled.
    trigger
        What started the run.
    started_at, completed_at
        Run boundaries, timezone-aware UTC.
    outcome
        ``failed`` when no change was applied because of a fatal error,
        ``cancelled`` when a stop or task cancellation ended the apply early,
        ``partial-errors`` when some changes failed, ``success`` otherwise.
    error
        Description of the fatal error, if any.
    pull_request
        Pull request that triggered the run, for pull-request triggers.
    changes_applied
        Outcome of every change that was started.

    """

    id: str
    organization: str
    trigger: TriggerKind
    started_at: dt.datetime
    completed_at: dt.datetime
    outcome: RunOutcome
    error: str | None = None
    pull_request: PullRequestInfo | None = None
    changes_applied: tuple[ChangeOutcome, ...] = ()

    @property
    def duration(self) -> dt.timedelta:
        """Return how long the run took."""
        return self.completed_at - self.started_at


@dataclasses.dataclass(frozen=True, slots=True)
class ServiceValidation:
    """Changes a configuration update would make on one service."""

    service: str
    changes: tuple[Change, ...] = ()


@dataclasses.dataclass(frozen=True, slots=True)
class ValidationReport:
    """Result of validating the configuration proposed at a head ref.

    ``issues`` lists validation problems of the head configuration; the
    per-service changes are then a best-effort diff of whatever part of it
    was valid. When the base configuration itself is invalid the diff is
    computed against its valid part and needs a manual review.
    """

    organization: str
    head_ref: str
    base_ref: str
    services: tuple[ServiceValidation, ...] = ()
    issues: tuple[str, ...] = ()
    base_ref_config_status: BaseRefConfigStatus = BaseRefConfigStatus.VALID
    error: str | None = None

    @property
    def invalid(self) -> bool:
        """Return True when the head configuration cannot be applied."""
        return bool(self.issues) or self.error is not None

    @property
    def needs_manual_review(self) -> bool:
        """Return True when the diff baseline could not be trusted."""
        return self.base_ref_config_status is not BaseRefConfigStatus.VALID

    @property
    def change_count(self) -> int:
        """Return the number of changes across services."""
        return sum(len(service.changes) for service in self.services)


class _RunFailedError(Exception):
    """Internal signal carrying the reason a run cannot continue."""


class Reconciler:
    """Runs reconciliations and validations for configured organizations.

    Parameters
    ----------
    config
        Deployment configuration listing the organizations.
    registry
        Service handlers; only registered services are reconciled.
    loader
        Builds desired states from the configuration repository.
    locks
        Per-organization locks shared with every trigger source.
    audit
        Receives one record per apply run. Optional in tests and the CLI.
    events
        Lifecycle event logger.

    """

    def __init__(  # noqa: PLR0913
        self,
        config: ClowardenConfig,
        registry: HandlerRegistry,
        loader: DesiredStateLoader,
        locks: OrganizationLocks,
        *,
        audit: AuditSink | None = None,
        events: ReconcilerEventLogger | None = None,
    ) -> None:
        """Store the collaborators."""
        self._config = config
        self._registry = registry
        self._loader = loader
        self._locks = locks
        self._audit = audit
        self._events = events or ReconcilerEventLogger()
        self._states: dict[str, RunState] = {}

    def state(self, organization: str) -> RunState:
        """Return the current run state of ``organization``."""
        return self._states.get(organization, RunState.IDLE)

    def _enter(self, organization: str, state: RunState) -> None:
        self._states[organization] = state

    # Apply runs

    async def reconcile(
        self,
        organization: str,
        trigger: TriggerKind,
        *,
        pull_request: PullRequestInfo | None = None,
        wait: bool = True,
        stop: asyncio.Event | None = None,
    ) -> ReconciliationRecord:
        """Make ``organization``'s live state match its declared state.

        Parameters
        ----------
        organization
            Name of a configured organization.
        trigger
            What started the run; recorded for auditing.
        pull_request
            Merged pull request behind a ``pull-request`` trigger.
        wait
            Queue behind a running reconciliation of the same organization
            when True; raise otherwise.
        stop
            When set during the apply phase, no further change is started.

        Raises
        ------
        OrganizationNotFoundError
            If the organization is not configured.
        ReconciliationInProgressError
            If ``wait`` is False and the organization is busy.

        """
        org = self._config.organization(organization)
        async with self._locks.hold(organization, wait=wait):
            run_id = str(uuid.uuid4())
            started_at = utcnow()
            self._events.log_run_started(run_id, organization, trigger, started_at)
            outcomes: list[ChangeOutcome] = []
            error: str | None = None
            try:
                cancelled = await self._apply_run(org, outcomes, stop)
                if cancelled:
                    error = CANCELLED_ERROR
            except _RunFailedError as exc:
                error = str(exc)
            except asyncio.CancelledError:
                await self._finish(
                    run_id,
                    org,
                    trigger,
                    started_at,
                    pull_request,
                    outcomes,
                    CANCELLED_ERROR,
                )
                raise
            finally:
                self._enter(organization, RunState.IDLE)

            return await self._finish(
                run_id, org, trigger, started_at, pull_request, outcomes, error
            )

    async def _finish(  # noqa: PLR0913
        self,
        run_id: str,
        org: OrganizationConfig,
        trigger: TriggerKind,
        started_at: dt.datetime,
        pull_request: PullRequestInfo | None,
        outcomes: list[ChangeOutcome],
        error: str | None,
    ) -> ReconciliationRecord:
        if error == CANCELLED_ERROR:
            outcome = RunOutcome.CANCELLED
        elif error is not None:
            outcome = RunOutcome.FAILED
        elif any(not item.succeeded for item in outcomes):
            outcome = RunOutcome.PARTIAL_ERRORS
        else:
            outcome = RunOutcome.SUCCESS
        record = ReconciliationRecord(
            id=run_id,
            organization=org.name,
            trigger=trigger,
            started_at=started_at,
            completed_at=utcnow(),
            outcome=outcome,
            error=error,
            pull_request=pull_request,
            changes_applied=tuple(outcomes),
        )
        self._events.log_run_completed(record)
        if self._audit is not None:
            try:
                await self._audit.record(record)
            except Exception as exc:  # noqa: BLE001 - the run itself is done
                log_exception(
                    logger, f"failed to store audit record for run {run_id}", exc
                )
        return record

    async def _apply_run(
        self,
        org: OrganizationConfig,
        outcomes: list[ChangeOutcome],
        stop: asyncio.Event | None,
    ) -> bool:
        """Run one apply pass, appending outcomes; return True if cut short."""
        self._enter(org.name, RunState.FETCHING_DESIRED)
        desired = await self._load(org, org.branch)
        projected: dict[str, ServiceState] = {}
        issues = list(desired.issues)
        for handler in self._registry:
            state, handler_issues = await self._project(org, handler, desired)
            projected[handler.name] = state
            issues.extend(handler_issues)
        if issues:
            msg = "invalid configuration: " + "; ".join(issues)
            raise _RunFailedError(msg)

        self._enter(org.name, RunState.FETCHING_ACTUAL)
        actual = await self._fetch_actual(org)

        self._enter(org.name, RunState.DIFFING)
        plan = [
            (
                handler,
                differ.compute(
                    handler, projected[handler.name], actual[handler.name]
                ),
            )
            for handler in self._registry
        ]

        self._enter(org.name, RunState.APPLYING)
        for handler, changes in plan:
            if not changes:
                continue
            log_info(
                logger,
                "Applying %d %s changes to %s",
                len(changes),
                handler.name,
                org.name,
            )
            result = await apply_all(org, changes, handler, stop=stop)
            outcomes.extend(result.outcomes)
            for failed in result.failed:
                self._events.log_change_failed(org.name, failed)
            if result.cancelled:
                task = asyncio.current_task()
                if task is not None and task.cancelling():
                    raise asyncio.CancelledError
                return True
        self._enter(org.name, RunState.COMPLETED)
        return False

    async def _load(self, org: OrganizationConfig, ref: str) -> DesiredState:
        try:
            return await self._loader.load(org, ref)
        except StateFetchError as exc:
            raise _RunFailedError(str(exc)) from exc

    async def _project(
        self,
        org: OrganizationConfig,
        handler: ServiceHandler,
        desired: DesiredState,
    ) -> tuple[ServiceState, tuple[str, ...]]:
        """Project ``desired`` for ``handler``, keeping the partial state on error."""
        try:
            return await handler.project_desired(org, desired), ()
        except ConfigurationError as exc:
            partial = exc.partial
            if not isinstance(partial, ServiceState):
                partial = ServiceState(
                    directory=desired.directory,
                    resources=desired.service_resources.get(handler.name),
                )
            return partial, exc.issues
        except Exception as exc:
            error = StateFetchError.for_service(handler.name, exc)
            raise _RunFailedError(str(error)) from exc

    async def _fetch_actual(self, org: OrganizationConfig) -> dict[str, ServiceState]:
        """Fetch every handler's live state concurrently; any failure is fatal."""
        handlers = list(self._registry)
        gathered = await asyncio.gather(
            *(handler.fetch_actual_state(org) for handler in handlers),
            return_exceptions=True,
        )
        states: dict[str, ServiceState] = {}
        for handler, result in zip(handlers, gathered, strict=True):
            if isinstance(result, Exception):
                error = StateFetchError.for_service(handler.name, result)
                raise _RunFailedError(str(error)) from result
            if isinstance(result, BaseException):
                raise result
            states[handler.name] = result
        return states

    # Validation runs

    async def validate(
        self,
        organization: str,
        head_ref: str,
        *,
        wait: bool = True,
    ) -> ValidationReport:
        """Validate the configuration at ``head_ref`` and report its changes.

        The proposed configuration is diffed against the one at the
        organization's base branch. Nothing is applied.

        Raises
        ------
        OrganizationNotFoundError
            If the organization is not configured.
        ReconciliationInProgressError
            If ``wait`` is False and the organization is busy.

        """
        org = self._config.organization(organization)
        async with self._locks.hold(organization, wait=wait):
            try:
                report = await self._validation_run(org, head_ref)
            finally:
                self._enter(organization, RunState.IDLE)
        self._events.log_validation_completed(report)
        return report

    async def _validation_run(
        self, org: OrganizationConfig, head_ref: str
    ) -> ValidationReport:
        self._enter(org.name, RunState.FETCHING_DESIRED)
        try:
            head = await self._loader.load(org, head_ref)
        except StateFetchError as exc:
            return ValidationReport(
                organization=org.name,
                head_ref=head_ref,
                base_ref=org.branch,
                base_ref_config_status=BaseRefConfigStatus.UNKNOWN,
                error=str(exc),
            )
        try:
            base: DesiredState | None = await self._loader.load(org, org.branch)
        except StateFetchError as exc:
            log_exception(
                logger, f"could not load base configuration of {org.name}", exc
            )
            base = None

        issues = list(head.issues)
        base_status = BaseRefConfigStatus.UNKNOWN
        if base is not None:
            base_status = (
                BaseRefConfigStatus.INVALID if base.invalid else BaseRefConfigStatus.VALID
            )

        self._enter(org.name, RunState.DIFFING)
        services: list[ServiceValidation] = []
        try:
            for handler in self._registry:
                head_state, head_issues = await self._project(org, handler, head)
                issues.extend(head_issues)
                if base is None:
                    services.append(ServiceValidation(service=handler.name))
                    continue
                base_state, base_issues = await self._project(org, handler, base)
                if base_issues:
                    base_status = BaseRefConfigStatus.INVALID
                changes = differ.compute(handler, head_state, base_state)
                services.append(
                    ServiceValidation(service=handler.name, changes=tuple(changes))
                )
        except _RunFailedError as exc:
            return ValidationReport(
                organization=org.name,
                head_ref=head_ref,
                base_ref=org.branch,
                issues=tuple(issues),
                base_ref_config_status=base_status,
                error=str(exc),
            )

        self._enter(org.name, RunState.VALIDATING)
        report = ValidationReport(
            organization=org.name,
            head_ref=head_ref,
            base_ref=org.branch,
            services=tuple(services),
            issues=tuple(issues),
            base_ref_config_status=base_status,
        )
        self._enter(org.name, RunState.COMPLETED)
        return report


def render_changes(changes: cabc.Iterable[Change]) -> str:
    """Return the Markdown list describing ``changes``."""
    return "\n".join(change.template_format() for change in changes)
