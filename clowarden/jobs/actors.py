"""Dramatiq actors for reconciliation and pull request validation.

Usage
-----
Queue an apply run after a configuration pull request was merged:

>>> reconcile_organization_job.send(
...     "cncf",
...     trigger="pull-request",
...     pull_request={"number": 42, "merged_by": "alice"},
... )

Queue the validation of an open pull request:

>>> validate_pull_request_job.send("cncf", "refs/pull/43/head")

Workers read the same ``CLOWARDEN_*`` variables as the API runtime. When
``CLOWARDEN_DATABASE_URL`` is set, apply runs are recorded in the audit
tables.
"""

from __future__ import annotations

import asyncio
import os
import threading
import typing as typ

import dramatiq
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from clowarden.audit import init_audit_storage
from clowarden.common.time import parse_utc_timestamp
from clowarden.factory import build_engine_from_env
from clowarden.jobs._broker import ensure_broker_configured
from clowarden.reconciler import PullRequestInfo, TriggerKind
from clowarden.serialization import serialize_record, serialize_report

if typ.TYPE_CHECKING:
    from clowarden.factory import Engine

type SessionFactory = async_sessionmaker[AsyncSession]

# Module-level caches reused across actor invocations
_ENGINE_CACHE: dict[str, AsyncEngine] = {}
_SESSION_FACTORY_CACHE: dict[str, SessionFactory] = {}
_STORAGE_READY: set[str] = set()
_CACHE_LOCK = threading.Lock()

# Serializes runs of one organization across the worker's threads
_ORG_LOCKS: dict[str, threading.Lock] = {}
_ORG_LOCKS_GUARD = threading.Lock()


def _get_or_create_session_factory(database_url: str) -> SessionFactory:
    """Return the cached session factory for ``database_url``.

    Thread-safe: uses a lock to prevent races between Dramatiq workers.
    """
    with _CACHE_LOCK:
        if database_url not in _SESSION_FACTORY_CACHE:
            engine = create_async_engine(database_url)
            _ENGINE_CACHE[database_url] = engine
            _SESSION_FACTORY_CACHE[database_url] = async_sessionmaker(
                engine, expire_on_commit=False
            )
        return _SESSION_FACTORY_CACHE[database_url]


async def _ensure_storage(database_url: str) -> None:
    if database_url in _STORAGE_READY:
        return
    await init_audit_storage(_ENGINE_CACHE[database_url])
    _STORAGE_READY.add(database_url)


def _org_lock(organization: str) -> threading.Lock:
    with _ORG_LOCKS_GUARD:
        return _ORG_LOCKS.setdefault(organization, threading.Lock())


def _run_actor_async[T](
    organization: str,
    async_fn: typ.Callable[[Engine], typ.Awaitable[T]],
) -> T:
    """Execute common async scaffolding for the actors.

    Builds a fresh engine inside the actor's event loop, holds the
    organization's worker lock for the whole run, and closes the REST
    client afterwards.
    """
    ensure_broker_configured()
    database_url = os.environ.get("CLOWARDEN_DATABASE_URL", "").strip() or None
    session_factory = (
        _get_or_create_session_factory(database_url) if database_url else None
    )

    async def run() -> T:
        if database_url is not None:
            await _ensure_storage(database_url)
        engine = build_engine_from_env(session_factory=session_factory)
        try:
            return await async_fn(engine)
        finally:
            await engine.aclose()

    with _org_lock(organization):
        return asyncio.run(run())


def _pull_request_from_message(
    payload: dict[str, typ.Any] | None,
) -> PullRequestInfo | None:
    if payload is None:
        return None
    return PullRequestInfo(
        number=int(payload["number"]),
        created_by=payload.get("created_by"),
        merged_by=payload.get("merged_by"),
        merged_at=parse_utc_timestamp(
            payload.get("merged_at"), field="pull_request.merged_at"
        ),
    )


@dramatiq.actor
def reconcile_organization_job(
    organization: str,
    *,
    trigger: str = TriggerKind.PERIODIC.value,
    pull_request: dict[str, typ.Any] | None = None,
) -> dict[str, typ.Any]:
    """Dramatiq actor applying an organization's declared state.

    Parameters
    ----------
    organization
        Name of a configured organization.
    trigger
        ``periodic`` or ``pull-request``.
    pull_request
        Merged pull request details: ``number`` and optionally
        ``created_by``, ``merged_by`` and ``merged_at`` (ISO 8601 with a
        timezone).

    Returns
    -------
    dict[str, Any]
        The serialized reconciliation record.

    Raises
    ------
    ValueError
        If ``trigger`` is unknown or ``merged_at`` has no timezone.

    """
    trigger_kind = TriggerKind(trigger)
    pr_info = _pull_request_from_message(pull_request)

    async def execute(engine: Engine) -> dict[str, typ.Any]:
        record = await engine.reconciler.reconcile(
            organization, trigger_kind, pull_request=pr_info
        )
        return serialize_record(record)

    return _run_actor_async(organization, execute)


@dramatiq.actor
def validate_pull_request_job(organization: str, head_ref: str) -> dict[str, typ.Any]:
    """Dramatiq actor validating the configuration proposed at ``head_ref``.

    Returns
    -------
    dict[str, Any]
        The serialized validation report.

    """

    async def execute(engine: Engine) -> dict[str, typ.Any]:
        report = await engine.reconciler.validate(organization, head_ref)
        return serialize_report(report)

    return _run_actor_async(organization, execute)
