"""Shared fixtures for unit and feature tests."""

from __future__ import annotations

import contextlib
import logging
import os
import socket
import typing as typ

import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from clowarden.audit import init_audit_storage

if typ.TYPE_CHECKING:
    from pathlib import Path

try:
    from py_pglite import PGliteConfig, PGliteManager

    _PGLITE_AVAILABLE = True
except ImportError:  # pragma: no cover - optional dependency
    _PGLITE_AVAILABLE = False

logger = logging.getLogger(__name__)


def _should_use_pglite() -> bool:
    """Return True when CLOWARDEN_TEST_DB asks for py-pglite Postgres."""
    target = os.getenv("CLOWARDEN_TEST_DB", "sqlite").lower()
    return target == "pglite" and _PGLITE_AVAILABLE


def _find_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@contextlib.asynccontextmanager
async def _pglite_engine(tmp_path: Path) -> typ.AsyncIterator[AsyncEngine]:
    """Start a py-pglite Postgres and yield an async engine bound to it."""
    port = _find_free_port()
    config = PGliteConfig(
        use_tcp=True,
        tcp_host="127.0.0.1",
        tcp_port=port,
        work_dir=tmp_path / "pglite",
    )
    with PGliteManager(config):
        url = (
            f"postgresql+asyncpg://postgres:postgres@{config.tcp_host}:"
            f"{config.tcp_port}/postgres"
        )
        engine = create_async_engine(url)
        try:
            yield engine
        finally:
            await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(
    tmp_path: Path,
) -> typ.AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Yield a session factory over freshly created audit tables."""
    async with contextlib.AsyncExitStack() as stack:
        engine: AsyncEngine | None = None
        if _should_use_pglite():
            try:
                engine = await stack.enter_async_context(_pglite_engine(tmp_path))
            except Exception as exc:  # noqa: BLE001 - fall back to SQLite
                logger.warning("py-pglite unavailable, falling back to SQLite: %s", exc)
        if engine is None:
            engine = create_async_engine(
                f"sqlite+aiosqlite:///{tmp_path / 'clowarden_test.db'}"
            )
            stack.push_async_callback(engine.dispose)
        await init_audit_storage(engine)
        yield async_sessionmaker(engine, expire_on_commit=False)
