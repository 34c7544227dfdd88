"""Container entrypoint: the ASGI app factory served by Granian.

``clowarden.runtime:create_app`` is the stable factory path. With
``CLOWARDEN_GITHUB_TOKEN`` set it wires the reconciliation engine, the
organization endpoints, the audit trail and the periodic scheduler; without
a token it serves only the probes, so a misconfigured pod stays observable
instead of crash-looping.

Environment
-----------
``CLOWARDEN_HOST`` / ``CLOWARDEN_PORT`` / ``CLOWARDEN_WORKERS``
    Listener settings (``0.0.0.0``, ``8080``, ``1``). More than one worker is
    only accepted in health-only mode.
``CLOWARDEN_LOG_LEVEL``
    femtologging level name (``INFO``).
``CLOWARDEN_GITHUB_TOKEN``
    Enables the engine.
``CLOWARDEN_CONFIG_PATH``
    Organizations file read by :func:`clowarden.factory.build_engine_from_env`.
``CLOWARDEN_DATABASE_URL``
    SQLAlchemy async URL of the audit database (optional).
``CLOWARDEN_RECONCILE_INTERVAL_S``
    Seconds between periodic passes; ``0`` disables them.
"""

from __future__ import annotations

import dataclasses as dc
import os
import typing as typ

from clowarden.logging import (
    configure_logging,
    get_logger,
    log_error,
    log_info,
    log_warning,
)

if typ.TYPE_CHECKING:
    import falcon.asgi

__all__ = ["RuntimeSettings", "create_app", "main"]

logger = get_logger(__name__)

_PORT_RANGE = range(1, 65536)


def _parse_port(port_str: str) -> int:
    """Return ``port_str`` as a TCP port or exit with status 1."""
    port = int(port_str) if port_str.strip().isdigit() else 0
    if port not in _PORT_RANGE:
        log_error(
            logger,
            "Invalid CLOWARDEN_PORT value: %r (must be %d-%d)",
            port_str,
            _PORT_RANGE.start,
            _PORT_RANGE.stop - 1,
        )
        raise SystemExit(1)
    return port


@dc.dataclass(frozen=True, slots=True)
class RuntimeSettings:
    """Listener and logging settings of the server process."""

    host: str = "0.0.0.0"  # noqa: S104 - containers bind every interface
    port: int = 8080
    workers: int = 1
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> RuntimeSettings:
        """Read the ``CLOWARDEN_*`` listener variables."""
        defaults = cls()
        workers = os.environ.get("CLOWARDEN_WORKERS", "").strip()
        return cls(
            host=os.environ.get("CLOWARDEN_HOST", defaults.host),
            port=_parse_port(os.environ.get("CLOWARDEN_PORT", str(defaults.port))),
            workers=max(int(workers), 1) if workers.isdigit() else defaults.workers,
            log_level=os.environ.get("CLOWARDEN_LOG_LEVEL", defaults.log_level),
        )


def _engine_enabled() -> bool:
    return bool(os.environ.get("CLOWARDEN_GITHUB_TOKEN", "").strip())


def _engine_app() -> falcon.asgi.App:
    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    from clowarden.api.app import AppDependencies
    from clowarden.api.app import create_app as create_api_app
    from clowarden.api.middleware import EngineLifecycle
    from clowarden.config import SchedulerConfig
    from clowarden.factory import build_engine_from_env
    from clowarden.jobs.scheduler import PeriodicReconciler

    database_url = os.environ.get("CLOWARDEN_DATABASE_URL", "").strip()
    db_engine = create_async_engine(database_url) if database_url else None
    session_factory = (
        async_sessionmaker(db_engine, expire_on_commit=False) if db_engine else None
    )
    engine = build_engine_from_env(session_factory=session_factory)

    schedule = SchedulerConfig.from_env()
    scheduler = (
        PeriodicReconciler(
            engine.reconciler,
            [org.name for org in engine.config.organizations],
            schedule,
        )
        if schedule.interval_s > 0
        else None
    )

    app = create_api_app(AppDependencies(reconciler=engine.reconciler))
    app.add_middleware(
        EngineLifecycle(engine, db_engine=db_engine, scheduler=scheduler)
    )
    return app


def create_app() -> falcon.asgi.App:
    """Return the ASGI app for the current environment.

    Returns
    -------
    falcon.asgi.App
        The full engine app, or a probes-only app when no GitHub token is
        configured.

    Raises
    ------
    ConfigurationError
        If a token is set but the organizations file is missing or invalid.

    """
    if _engine_enabled():
        return _engine_app()

    from clowarden.api.app import create_app as create_api_app

    log_warning(
        logger, "CLOWARDEN_GITHUB_TOKEN is not set; starting in health-only mode"
    )
    return create_api_app()


def main() -> None:
    """Serve :func:`create_app` with Granian.

    The engine runs in a single worker: organization locks and the periodic
    scheduler live in the process, so several workers would reconcile the
    same organization concurrently.
    """
    settings = RuntimeSettings.from_env()
    level, rejected = configure_logging(settings.log_level)
    if rejected:
        log_warning(
            logger,
            "Invalid CLOWARDEN_LOG_LEVEL %r, falling back to %s",
            settings.log_level,
            level,
        )
    if settings.workers > 1 and _engine_enabled():
        log_error(
            logger,
            "CLOWARDEN_WORKERS=%d is not supported while the engine is enabled; "
            "run one worker per deployment",
            settings.workers,
        )
        raise SystemExit(1)

    from granian import Granian
    from granian.constants import Interfaces

    log_info(
        logger,
        "Starting CLOWarden on %s:%d with %d worker(s)",
        settings.host,
        settings.port,
        settings.workers,
    )
    Granian(
        "clowarden.runtime:create_app",
        address=settings.host,
        port=settings.port,
        workers=settings.workers,
        interface=Interfaces.ASGI,
        factory=True,
    ).serve()


if __name__ == "__main__":
    main()
