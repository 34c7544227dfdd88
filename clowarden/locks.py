"""Per-organization mutual exclusion for reconciliation runs."""

from __future__ import annotations

import asyncio
import collections
import contextlib
import typing as typ

from .errors import ReconciliationInProgressError

if typ.TYPE_CHECKING:
    import collections.abc as cabc


class OrganizationLocks:
    """One asyncio lock per organization.

    Runs for the same organization are serialized; runs for different
    organizations never wait on each other. A single instance is shared by
    every trigger source of a process.

    An organization is busy from the moment a run asks for its lock until
    that run leaves, so callers that refuse to wait are also turned away
    while earlier callers are still queued.
    """

    def __init__(self) -> None:
        """Start with no locks; they are created on first use."""
        self._locks: dict[str, asyncio.Lock] = {}
        self._claims: collections.Counter[str] = collections.Counter()

    def _lock(self, organization: str) -> asyncio.Lock:
        return self._locks.setdefault(organization, asyncio.Lock())

    def locked(self, organization: str) -> bool:
        """Return True while a run holds the organization's lock."""
        lock = self._locks.get(organization)
        return lock is not None and lock.locked()

    def busy(self, organization: str) -> bool:
        """Return True while a run holds or waits for the organization."""
        return self._claims[organization] > 0

    @contextlib.asynccontextmanager
    async def hold(
        self, organization: str, *, wait: bool = True
    ) -> cabc.AsyncIterator[None]:
        """Hold the organization's lock for the duration of the block.

        Parameters
        ----------
        organization
            Organization to lock.
        wait
            Queue behind running and queued reconciliations when True;
            otherwise raise immediately if there are any.

        Raises
        ------
        ReconciliationInProgressError
            If ``wait`` is False and the organization is busy.

        """
        if not wait and self.busy(organization):
            raise ReconciliationInProgressError(organization)
        lock = self._lock(organization)
        self._claims[organization] += 1
        try:
            async with lock:
                yield
        finally:
            self._claims[organization] -= 1
            if not self._claims[organization]:
                del self._claims[organization]
