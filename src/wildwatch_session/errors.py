from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SessionErrorCategory(str, Enum):
    DECODE = "decode"
    NO_CREDENTIAL = "no_credential"
    RENEWAL_NETWORK = "renewal_network"
    RENEWAL_REJECTED = "renewal_rejected"
    REJECTED_AFTER_RETRY = "rejected_after_retry"
    TRANSPORT = "transport"
    UNKNOWN = "unknown"


_TERMINAL_CATEGORIES = frozenset(
    {
        SessionErrorCategory.RENEWAL_NETWORK,
        SessionErrorCategory.RENEWAL_REJECTED,
        SessionErrorCategory.REJECTED_AFTER_RETRY,
        SessionErrorCategory.UNKNOWN,
    }
)


@dataclass(slots=True, eq=False)
class SessionError(Exception):
    message: str
    category: SessionErrorCategory = SessionErrorCategory.UNKNOWN
    status_code: int | None = None
    inner_error: Exception | None = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.message

    @property
    def is_terminal(self) -> bool:
        """True when the failure ends the session and forces a new sign-in."""
        return self.category in _TERMINAL_CATEGORIES

    @property
    def recovery_suggestion(self) -> str | None:
        if self.category in {
            SessionErrorCategory.DECODE,
            SessionErrorCategory.NO_CREDENTIAL,
        }:
            return "Sign in to start a new session."
        if self.category is SessionErrorCategory.RENEWAL_NETWORK:
            return "The session could not be renewed; check your connection and sign in again."
        if self.category in {
            SessionErrorCategory.RENEWAL_REJECTED,
            SessionErrorCategory.REJECTED_AFTER_RETRY,
        }:
            return "Your session has expired. Sign in again."
        if self.category is SessionErrorCategory.TRANSPORT:
            return "Check your internet connection and try again."
        return None


class DecodeError(SessionError):
    def __init__(
        self,
        message: str = "Credential could not be decoded",
        inner_error: Exception | None = None,
    ) -> None:
        super().__init__(
            message=message,
            category=SessionErrorCategory.DECODE,
            inner_error=inner_error,
        )


class MissingCredentialError(SessionError):
    def __init__(self, message: str = "No credential is stored") -> None:
        super().__init__(message=message, category=SessionErrorCategory.NO_CREDENTIAL)


class RenewalError(SessionError):
    """Base class for a failed refresh exchange."""

    def __init__(
        self,
        message: str = "Credential renewal failed",
        *,
        category: SessionErrorCategory = SessionErrorCategory.UNKNOWN,
        status_code: int | None = None,
        inner_error: Exception | None = None,
    ) -> None:
        super().__init__(
            message=message,
            category=category,
            status_code=status_code,
            inner_error=inner_error,
        )


class RenewalNetworkError(RenewalError):
    def __init__(
        self,
        message: str = "Network error during credential renewal",
        inner_error: Exception | None = None,
    ) -> None:
        super().__init__(
            message=message,
            category=SessionErrorCategory.RENEWAL_NETWORK,
            inner_error=inner_error,
        )


class RenewalRejected(RenewalError):
    def __init__(
        self,
        message: str = "Identity provider rejected the renewal",
        status_code: int | None = None,
    ) -> None:
        super().__init__(
            message=message,
            category=SessionErrorCategory.RENEWAL_REJECTED,
            status_code=status_code,
        )


class RequestRejectedAfterRetry(SessionError):
    def __init__(
        self,
        message: str = "Request rejected after credential renewal",
        status_code: int | None = 401,
    ) -> None:
        super().__init__(
            message=message,
            category=SessionErrorCategory.REJECTED_AFTER_RETRY,
            status_code=status_code,
        )


class TransportError(SessionError):
    def __init__(
        self,
        message: str = "Network error",
        inner_error: Exception | None = None,
    ) -> None:
        super().__init__(
            message=message,
            category=SessionErrorCategory.TRANSPORT,
            inner_error=inner_error,
        )


class StorageError(RuntimeError):
    """Raised by a credential backend when its medium cannot be read or written."""


__all__ = [
    "DecodeError",
    "MissingCredentialError",
    "RenewalError",
    "RenewalNetworkError",
    "RenewalRejected",
    "RequestRejectedAfterRetry",
    "SessionError",
    "SessionErrorCategory",
    "StorageError",
    "TransportError",
]
