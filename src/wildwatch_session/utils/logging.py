from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional, cast

import structlog
from loguru import logger as loguru_logger
from structlog.exceptions import DropEvent
from structlog.stdlib import BoundLogger
from structlog.typing import EventDict, WrappedLogger

from wildwatch_session.config.settings import ENV_PREFIX, log_dir
from wildwatch_session.utils.sanitize import redact_credentials, sanitize_log_message


LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {message} | {extra}"
DEFAULT_LOG_FILENAME = "wildwatch-session.log"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
_LEVELS: frozenset[str] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR"})
_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(slots=True)
class LoggingOptions:
    level: LogLevel = "INFO"
    debug: bool = False
    rotation: str = "10 MB"
    retention: str = "14 days"
    backtrace: bool = False
    # Locals in tracebacks would print raw credentials; opt in explicitly.
    diagnose: bool = False
    log_path: Optional[Path] = None

    @classmethod
    def from_env(cls) -> LoggingOptions:
        """Read ``WILDWATCH_LOG_LEVEL``, ``WILDWATCH_LOG_DEBUG`` and ``WILDWATCH_LOG_PATH``.

        Unknown levels are ignored so a typo never silences the session log.
        """

        options = cls()
        level = (os.getenv(f"{ENV_PREFIX}LOG_LEVEL") or "").strip().upper()
        if level in _LEVELS:
            options.level = cast(LogLevel, level)
        debug = os.getenv(f"{ENV_PREFIX}LOG_DEBUG")
        if debug is not None:
            options.debug = debug.strip().lower() in _TRUTHY
        path = os.getenv(f"{ENV_PREFIX}LOG_PATH")
        if path:
            options.log_path = Path(path).expanduser()
        return options


_configured_log_path: Optional[Path] = None
_is_configured = False


def configure_logging(options: LoggingOptions | None = None) -> Path:
    """Route structlog events through the credential scrubber into loguru sinks."""

    global _configured_log_path, _is_configured

    opts = options or LoggingOptions.from_env()
    log_path = opts.log_path or (log_dir() / DEFAULT_LOG_FILENAME)

    loguru_logger.remove()
    _add_console_sink(opts)
    _add_file_sink(opts, log_path)

    numeric_level = getattr(logging, opts.level.upper(), logging.INFO)
    if opts.debug:
        numeric_level = logging.DEBUG

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_event,
            _log_to_loguru,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=True,
    )

    _configured_log_path = log_path
    _is_configured = True
    return log_path


def bind_session_context(subject: str | None) -> None:
    """Tag every subsequent event in this context with the session subject."""

    if subject is None:
        structlog.contextvars.unbind_contextvars("session_subject")
    else:
        structlog.contextvars.bind_contextvars(session_subject=subject)


def redact_event(
    _: WrappedLogger,
    __: str,
    event_dict: EventDict,
) -> EventDict:
    """Scrub credentials from every string value before it reaches a sink."""

    for key, value in list(event_dict.items()):
        if isinstance(value, str):
            event_dict[key] = redact_credentials(sanitize_log_message(value))
    return event_dict


def _add_console_sink(opts: LoggingOptions) -> None:
    loguru_logger.add(
        sys.stderr,
        level="DEBUG" if opts.debug else opts.level,
        colorize=True,
        enqueue=True,
        backtrace=opts.backtrace or opts.debug,
        diagnose=opts.diagnose,
        format=LOG_FORMAT,
    )


def _add_file_sink(opts: LoggingOptions, log_path: Path) -> None:
    loguru_logger.add(
        log_path,
        level="DEBUG",
        rotation=opts.rotation,
        retention=opts.retention,
        enqueue=True,
        encoding="utf-8",
        diagnose=opts.diagnose,
        format=LOG_FORMAT,
    )


def _log_to_loguru(
    _: WrappedLogger,
    __: str,
    event_dict: EventDict,
) -> EventDict:
    level = str(event_dict.pop("level", "INFO")).upper()
    event = event_dict.pop("event", "")
    timestamp = event_dict.pop("timestamp", None)
    exception = event_dict.pop("exception", None)
    event_dict.pop("stack", None)
    bind_logger = loguru_logger.bind(**event_dict)
    if timestamp:
        bind_logger = bind_logger.bind(timestamp=timestamp)
    if exception:
        # Already formatted and scrubbed; loguru must not re-render the traceback.
        event = f"{event}\n{exception}"
    bind_logger.opt(depth=6).log(level, event)
    raise DropEvent


def get_logger(*initial_values: object, **initial_kw: object) -> BoundLogger:
    log = structlog.get_logger(*initial_values, **initial_kw)
    if not _is_configured:
        configure_logging()
    return cast(BoundLogger, log)


def log_file_path() -> Path:
    if _configured_log_path is None:
        return configure_logging()
    return _configured_log_path


__all__ = [
    "LoggingOptions",
    "bind_session_context",
    "configure_logging",
    "get_logger",
    "log_file_path",
    "redact_event",
]
