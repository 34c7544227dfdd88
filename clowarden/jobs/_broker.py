"""Dramatiq broker selection for CLOWarden workers.

Workers point ``CLOWARDEN_BROKER_URL`` at Redis (``redis://``) or RabbitMQ
(``amqp://``). Without a URL only the in-memory stub broker may be used, and
only when ``CLOWARDEN_ALLOW_STUB_BROKER`` is truthy or under pytest.

The broker is installed on first use rather than at import time, so
importing :mod:`clowarden.jobs` never mutates global Dramatiq state.
"""

from __future__ import annotations

import os
import sys
import threading
import typing as typ

import dramatiq
from dramatiq.brokers.stub import StubBroker

from clowarden.logging import get_logger, log_info

if typ.TYPE_CHECKING:
    from dramatiq import Broker

logger = get_logger(__name__)

_TRUTHY = frozenset({"1", "true", "yes"})
_PYTEST_VARIABLES = ("PYTEST_CURRENT_TEST", "PYTEST_XDIST_WORKER", "PYTEST_ADDOPTS")

_lock = threading.Lock()
_configured = False


class BrokerConfigError(RuntimeError):
    """Raised when no usable Dramatiq broker can be installed."""


def _under_pytest() -> bool:
    return "pytest" in sys.modules or any(
        name in os.environ for name in _PYTEST_VARIABLES
    )


def _stub_allowed() -> bool:
    flag = os.environ.get("CLOWARDEN_ALLOW_STUB_BROKER", "").strip().lower()
    return flag in _TRUTHY or _under_pytest()


def broker_from_url(url: str) -> Broker:
    """Return the Dramatiq broker matching ``url``'s scheme.

    Raises
    ------
    BrokerConfigError
        If the scheme is neither Redis nor AMQP.

    """
    scheme = url.partition("://")[0].lower()
    if scheme in {"redis", "rediss"}:
        from dramatiq.brokers.redis import RedisBroker

        return RedisBroker(url=url)
    if scheme in {"amqp", "amqps"}:
        from dramatiq.brokers.rabbitmq import RabbitmqBroker

        return RabbitmqBroker(url=url)
    msg = f"unsupported broker URL scheme: {scheme or url!r}"
    raise BrokerConfigError(msg)


def _current_broker() -> Broker | None:
    try:
        return dramatiq.get_broker()
    except (ImportError, LookupError):
        # get_broker() falls back to RabbitMQ, whose client may be absent
        return None


def ensure_broker_configured() -> None:
    """Install a broker for the running worker, once per process.

    A URL in ``CLOWARDEN_BROKER_URL`` always wins. Otherwise an already
    installed broker is kept, and a stub broker is installed where allowed.

    Raises
    ------
    BrokerConfigError
        If nothing is configured and the stub broker is not allowed.

    """
    global _configured

    if _configured:
        return
    with _lock:
        if _configured:
            return
        url = os.environ.get("CLOWARDEN_BROKER_URL", "").strip()
        if url:
            dramatiq.set_broker(broker_from_url(url))
            log_info(logger, "Dramatiq broker set from CLOWARDEN_BROKER_URL")
        elif _current_broker() is None:
            if not _stub_allowed():
                msg = (
                    "no Dramatiq broker configured; set CLOWARDEN_BROKER_URL "
                    "or CLOWARDEN_ALLOW_STUB_BROKER=1 for local runs"
                )
                raise BrokerConfigError(msg)
            dramatiq.set_broker(StubBroker())
        _configured = True
