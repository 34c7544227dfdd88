"""Best-effort application of an ordered change list.

Changes are applied one at a time in the order given. A failing change is
recorded on its outcome and the loop moves on, so one bad change never
blocks the others. Nothing is rolled back; the next reconciliation picks up
whatever is still different.
"""

from __future__ import annotations

import asyncio
import dataclasses
import typing as typ

from .changes import Change, ChangeOutcome
from .common.time import utcnow
from .logging import get_logger, log_info

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .config import OrganizationConfig
    from .services import ServiceHandler

logger = get_logger(__name__)


@dataclasses.dataclass(frozen=True, slots=True)
class ApplyResult:
    """Outcomes of one apply pass.

    Attributes
    ----------
    outcomes
        One outcome per change that was started, in order.
    cancelled
        True when the pass stopped before every change was started.

    """

    outcomes: tuple[ChangeOutcome, ...] = ()
    cancelled: bool = False

    @property
    def errors_found(self) -> bool:
        """Return True when any change failed."""
        return any(not outcome.succeeded for outcome in self.outcomes)

    @property
    def failed(self) -> tuple[ChangeOutcome, ...]:
        """Return the outcomes that carry an error."""
        return tuple(outcome for outcome in self.outcomes if not outcome.succeeded)


async def _apply_one(
    org: OrganizationConfig, change: Change, handler: ServiceHandler
) -> ChangeOutcome:
    try:
        await handler.apply_change(org, change)
    except asyncio.CancelledError:
        raise
    except Exception as exc:  # noqa: BLE001 - recorded on the outcome
        return ChangeOutcome(
            change=change, applied_at=utcnow(), error=str(exc) or repr(exc)
        )
    return ChangeOutcome(change=change, applied_at=utcnow())


async def apply_all(
    org: OrganizationConfig,
    changes: cabc.Sequence[Change],
    handler: ServiceHandler,
    *,
    stop: asyncio.Event | None = None,
) -> ApplyResult:
    """Apply ``changes`` in order with ``handler``.

    Parameters
    ----------
    org
        Organization the changes belong to.
    changes
        Changes in apply order, as returned by the differ.
    handler
        Handler of the service the changes target.
    stop
        When set, no further change is started. A change already in flight
        is allowed to finish and is recorded.

    Returns
    -------
    ApplyResult
        Outcomes for every started change. If the calling task is cancelled
        the in-flight change still completes, the pass stops, and the result
        is marked cancelled instead of the cancellation propagating.

    """
    outcomes: list[ChangeOutcome] = []
    for change in changes:
        if stop is not None and stop.is_set():
            log_info(
                logger,
                "Stopping apply for %s after %d of %d changes",
                org.name,
                len(outcomes),
                len(changes),
            )
            return ApplyResult(outcomes=tuple(outcomes), cancelled=True)

        task = asyncio.ensure_future(_apply_one(org, change, handler))
        try:
            outcome = await asyncio.shield(task)
        except asyncio.CancelledError:
            outcomes.append(await task)
            return ApplyResult(outcomes=tuple(outcomes), cancelled=True)
        outcomes.append(outcome)
    return ApplyResult(outcomes=tuple(outcomes))
