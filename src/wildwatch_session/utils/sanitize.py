from __future__ import annotations

import re
from typing import Final

REDACTED: Final[str] = "<redacted>"

_BEARER_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(Bearer\s+)[^\s,;\"']+",
    flags=re.IGNORECASE,
)

_JWT_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"\b[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]*",
)

_CONTROL_CHARS: Final[frozenset[str]] = frozenset(
    chr(code) for code in range(0x00, 0x20) if chr(code) not in {"\t", "\n"}
)


def sanitize_log_message(value: str) -> str:
    """Normalise log messages by stripping control characters and CR sequences."""

    normalised = value.replace("\r\n", "\n").replace("\r", "\n")
    return "".join(ch for ch in normalised if ch not in _CONTROL_CHARS)


def redact_credentials(value: str) -> str:
    """Mask bearer headers and JWT-shaped strings."""

    masked = _BEARER_PATTERN.sub(lambda match: f"{match.group(1)}{REDACTED}", value)
    return _JWT_PATTERN.sub(REDACTED, masked)


__all__ = ["REDACTED", "redact_credentials", "sanitize_log_message"]
