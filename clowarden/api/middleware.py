"""Lifespan middleware for the Falcon ASGI application.

Falcon calls ``process_startup`` and ``process_shutdown`` on middleware
objects when the ASGI server sends the lifespan events. The runtime uses
this hook to prepare the audit tables, start periodic reconciliation, and
release the GitHub client and database engine on shutdown.

Usage
-----
Register the middleware when creating the Falcon app::

    lifecycle = EngineLifecycle(engine, db_engine=db_engine, scheduler=scheduler)
    app.add_middleware(lifecycle)

"""

from __future__ import annotations

import typing as typ

from clowarden.audit import init_audit_storage
from clowarden.logging import get_logger, log_info

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from clowarden.factory import Engine
    from clowarden.jobs.scheduler import PeriodicReconciler

__all__ = ["EngineLifecycle"]

logger = get_logger(__name__)


class EngineLifecycle:
    """Start and stop the engine with the ASGI application.

    Parameters
    ----------
    engine
        Assembled reconciliation engine.
    db_engine
        Database engine backing the audit sink, if any. Its tables are
        created on startup and its pool is disposed on shutdown.
    scheduler
        Periodic reconciler started after the tables exist.

    """

    def __init__(
        self,
        engine: Engine,
        *,
        db_engine: AsyncEngine | None = None,
        scheduler: PeriodicReconciler | None = None,
    ) -> None:
        """Store the components managed across the application lifespan."""
        self._engine = engine
        self._db_engine = db_engine
        self._scheduler = scheduler

    async def process_startup(self, _scope: object, _event: object) -> None:
        """Create audit tables and start the periodic reconciler."""
        if self._db_engine is not None:
            await init_audit_storage(self._db_engine)
        if self._scheduler is not None:
            self._scheduler.start()
        log_info(
            logger,
            "Reconciliation engine started for %d organizations",
            len(self._engine.config.organizations),
        )

    async def process_shutdown(self, _scope: object, _event: object) -> None:
        """Stop the periodic reconciler and release connections."""
        try:
            if self._scheduler is not None:
                await self._scheduler.stop()
        finally:
            await self._engine.aclose()
            if self._db_engine is not None:
                await self._db_engine.dispose()
        log_info(logger, "Reconciliation engine stopped")
