"""Periodic reconciliation of every configured organization.

Changes made on GitHub outside the configuration repository are reverted
by these runs. Organizations are visited one after the other with a delay
in between to spread API usage over the interval.
"""

from __future__ import annotations

import asyncio
import contextlib
import typing as typ

from clowarden.logging import get_logger, log_exception, log_info
from clowarden.reconciler import TriggerKind

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from clowarden.config import SchedulerConfig
    from clowarden.reconciler import Reconciler, ReconciliationRecord

logger = get_logger(__name__)


class PeriodicReconciler:
    """Reconciles organizations on a fixed interval.

    Parameters
    ----------
    reconciler
        Shared reconciler; its locks queue periodic runs behind on-demand
        ones.
    organizations
        Names of the organizations to visit, in order.
    config
        Interval and per-organization delay.
    sleep
        Awaitable sleep, replaceable in tests.

    """

    def __init__(
        self,
        reconciler: Reconciler,
        organizations: cabc.Sequence[str],
        config: SchedulerConfig,
        *,
        sleep: cabc.Callable[[float], cabc.Awaitable[object]] = asyncio.sleep,
    ) -> None:
        """Store the collaborators; nothing runs until :meth:`start`."""
        self._reconciler = reconciler
        self._organizations = tuple(organizations)
        self._config = config
        self._sleep = sleep
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        """Return True while the background loop is active."""
        return self._task is not None and not self._task.done()

    async def run_once(self) -> list[ReconciliationRecord]:
        """Reconcile each organization once.

        A failing organization is logged and skipped so the others still
        get their run.
        """
        records: list[ReconciliationRecord] = []
        for index, organization in enumerate(self._organizations):
            if index and self._config.org_delay_s:
                await self._sleep(self._config.org_delay_s)
            try:
                record = await self._reconciler.reconcile(
                    organization, TriggerKind.PERIODIC
                )
            except Exception as exc:  # noqa: BLE001 - keep visiting the rest
                log_exception(
                    logger, f"periodic reconciliation of {organization} failed", exc
                )
                continue
            records.append(record)
        return records

    async def run_forever(self) -> None:
        """Run passes separated by the configured interval until cancelled."""
        log_info(
            logger,
            "Periodic reconciliation of %d organizations every %ds",
            len(self._organizations),
            self._config.interval_s,
        )
        while True:
            await self.run_once()
            await self._sleep(self._config.interval_s)

    def start(self) -> None:
        """Start the background loop in the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self.run_forever())

    async def stop(self) -> None:
        """Cancel the background loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
