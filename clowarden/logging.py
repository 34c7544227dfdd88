"""femtologging wrappers shared by every CLOWarden component.

Messages are formatted before they reach femtologging, so call sites use
percent-style templates and the logger only ever sees finished strings.

Example:
>>> from clowarden.logging import get_logger, log_info
>>> logger = get_logger(__name__)
>>> log_info(logger, "Reconciling %s", "cncf")

"""

from __future__ import annotations

import enum
import typing as typ

from femtologging import basicConfig, get_logger

_DEFAULT_LEVEL = "INFO"


class LogLevel(enum.StrEnum):
    """Log level names accepted by femtologging."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def normalize_log_level(level: str | None) -> tuple[str, bool]:
    """Return the canonical level name and whether the input was rejected.

    Parameters
    ----------
    level : str | None
        Level name as supplied by the operator, in any case.

    Returns
    -------
    tuple[str, bool]
        The level to use and ``True`` when the input fell back to ``INFO``.

    """
    candidate = (level or "").strip().upper()
    if candidate in LogLevel.__members__:
        return (candidate, False)
    return (_DEFAULT_LEVEL, True)


def configure_logging(level: str, *, force: bool = False) -> tuple[str, bool]:
    """Install the femtologging root configuration.

    Parameters
    ----------
    level : str
        Level name as supplied by the operator.
    force : bool, optional
        Replace handlers installed by an earlier call.

    Returns
    -------
    tuple[str, bool]
        Same as :func:`normalize_log_level`.

    """
    normalized, invalid = normalize_log_level(level)
    basicConfig(level=normalized, force=force)
    return (normalized, invalid)


class _SupportsLog(typ.Protocol):
    """Subset of the femtologging logger API used here."""

    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str | None: ...


def _emit(
    logger: _SupportsLog,
    level: LogLevel,
    template: str,
    args: tuple[object, ...],
    exc_info: object | None,
) -> None:
    message = template % args if args else template
    logger.log(level.value, message, exc_info=exc_info, stack_info=False)


class _LevelLogger(typ.Protocol):
    def __call__(
        self,
        logger: _SupportsLog,
        template: str,
        /,
        *args: object,
        exc_info: object | None = None,
    ) -> None: ...


def _at(level: LogLevel) -> _LevelLogger:
    def emit(
        logger: _SupportsLog,
        template: str,
        /,
        *args: object,
        exc_info: object | None = None,
    ) -> None:
        _emit(logger, level, template, args, exc_info)

    emit.__name__ = f"log_{level.value.lower()}"
    emit.__doc__ = f"Log a {level.value} message built from ``template % args``."
    return emit


log_debug = _at(LogLevel.DEBUG)
log_info = _at(LogLevel.INFO)
log_warning = _at(LogLevel.WARNING)
log_error = _at(LogLevel.ERROR)


def log_exception(logger: _SupportsLog, message: str, exc: BaseException) -> None:
    """Log ``message`` at ERROR with ``exc`` attached as exc_info.

    Parameters
    ----------
    logger : _SupportsLog
        Destination logger.
    message : str
        Already formatted description of the failure.
    exc : BaseException
        Exception whose traceback accompanies the record.

    """
    logger.log(LogLevel.ERROR.value, message, exc_info=exc, stack_info=False)


__all__ = [
    "LogLevel",
    "configure_logging",
    "get_logger",
    "log_debug",
    "log_error",
    "log_exception",
    "log_info",
    "log_warning",
    "normalize_log_level",
]
