"""Shared utility helpers for the WildWatch session manager."""

from .logging import (
    LoggingOptions,
    bind_session_context,
    configure_logging,
    get_logger,
    log_file_path,
)
from .sanitize import redact_credentials, sanitize_log_message
from .events import EventHook
from .timers import LoopScheduler, Scheduler, TimerHandle

__all__ = [
    "LoggingOptions",
    "bind_session_context",
    "configure_logging",
    "get_logger",
    "log_file_path",
    "redact_credentials",
    "sanitize_log_message",
    "EventHook",
    "LoopScheduler",
    "Scheduler",
    "TimerHandle",
]
