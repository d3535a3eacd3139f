"""Session credential lifecycle manager for the WildWatch clients."""

from __future__ import annotations

from wildwatch_session.auth import Credential, CredentialClock, CredentialStore
from wildwatch_session.bootstrap import build_credential_backend, build_session_manager
from wildwatch_session.config import Settings, SettingsManager
from wildwatch_session.errors import (
    DecodeError,
    MissingCredentialError,
    RenewalError,
    RenewalNetworkError,
    RenewalRejected,
    RequestRejectedAfterRetry,
    SessionError,
    TransportError,
)
from wildwatch_session.session import (
    RenewalCoordinator,
    RequestPipeline,
    RequestSpec,
    SessionManager,
    SessionTerminator,
    TerminationReason,
)

__version__ = "0.1.0"

__all__ = [
    "Credential",
    "CredentialClock",
    "CredentialStore",
    "DecodeError",
    "MissingCredentialError",
    "RenewalCoordinator",
    "RenewalError",
    "RenewalNetworkError",
    "RenewalRejected",
    "RequestPipeline",
    "RequestRejectedAfterRetry",
    "RequestSpec",
    "SessionError",
    "SessionManager",
    "SessionTerminator",
    "Settings",
    "SettingsManager",
    "TerminationReason",
    "TransportError",
    "build_credential_backend",
    "build_session_manager",
]
