"""Wiring of the reconciliation engine from configuration.

The API runtime, the Dramatiq actors, and the CLI all assemble the same
pieces: a GitHub REST client, a handler registry, a desired-state loader,
and a reconciler. This module keeps that assembly in one place.

Usage
-----
Build an engine for the API runtime::

    from clowarden.factory import build_engine_from_env

    engine = build_engine_from_env(session_factory=session_factory)
    record = await engine.reconciler.reconcile("cncf", TriggerKind.PERIODIC)

"""

from __future__ import annotations

import dataclasses as dc
import os
import typing as typ

from clowarden.audit import SqlAlchemyAuditSink
from clowarden.config import load_config
from clowarden.desired import DesiredStateLoader, GitHubConfigSource
from clowarden.locks import OrganizationLocks
from clowarden.observability import ReconcilerEventLogger
from clowarden.reconciler import Reconciler
from clowarden.services import HandlerRegistry
from clowarden.services.github import GitHubApiConfig, GitHubHandler, GitHubRestClient

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from clowarden.config import ClowardenConfig
    from clowarden.desired import ConfigSource

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "Engine",
    "build_engine",
    "build_engine_from_env",
    "build_registry",
    "config_path_from_env",
]

DEFAULT_CONFIG_PATH = "clowarden.yaml"


@dc.dataclass(frozen=True, slots=True)
class Engine:
    """Assembled engine components sharing one REST client.

    Attributes
    ----------
    config
        Deployment configuration.
    reconciler
        Reconciler driving every run.
    client
        GitHub REST client; close it with :meth:`aclose`.
    audit
        Audit sink, when a database is configured.

    """

    config: ClowardenConfig
    reconciler: Reconciler
    client: GitHubRestClient
    audit: SqlAlchemyAuditSink | None = None

    async def aclose(self) -> None:
        """Release the REST client."""
        await self.client.aclose()


def build_registry(config: ClowardenConfig, client: GitHubRestClient) -> HandlerRegistry:
    """Register the handlers enabled in ``config``."""
    registry = HandlerRegistry()
    if config.services.github.enabled:
        registry.register(GitHubHandler(client))
    return registry


def build_engine(
    config: ClowardenConfig,
    client: GitHubRestClient,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    locks: OrganizationLocks | None = None,
    source: ConfigSource | None = None,
) -> Engine:
    """Assemble an engine from explicit collaborators.

    Parameters
    ----------
    config
        Deployment configuration.
    client
        GitHub REST client shared by the handler and the config source.
    session_factory
        When given, every apply run is recorded through a
        :class:`SqlAlchemyAuditSink`.
    locks
        Locks to share with other reconcilers of the same process.
    source
        Configuration file source; defaults to the GitHub contents API.

    """
    registry = build_registry(config, client)
    loader = DesiredStateLoader(registry, source or GitHubConfigSource(client))
    audit = SqlAlchemyAuditSink(session_factory) if session_factory else None
    reconciler = Reconciler(
        config,
        registry,
        loader,
        locks or OrganizationLocks(),
        audit=audit,
        events=ReconcilerEventLogger(),
    )
    return Engine(config=config, reconciler=reconciler, client=client, audit=audit)


def config_path_from_env() -> str:
    """Return ``CLOWARDEN_CONFIG_PATH`` or the default file name."""
    return os.environ.get("CLOWARDEN_CONFIG_PATH", "").strip() or DEFAULT_CONFIG_PATH


def build_engine_from_env(
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    locks: OrganizationLocks | None = None,
) -> Engine:
    """Assemble an engine from ``CLOWARDEN_*`` environment variables.

    Raises
    ------
    ConfigurationError
        If the deployment configuration file is missing or invalid.
    GitHubConfigError
        If no GitHub token is configured.

    """
    config = load_config(config_path_from_env())
    client = GitHubRestClient(GitHubApiConfig.from_env())
    return build_engine(config, client, session_factory=session_factory, locks=locks)
