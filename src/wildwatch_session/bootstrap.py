from __future__ import annotations

from wildwatch_session.auth import (
    CredentialBackend,
    FileCredentialBackend,
    KeyringCredentialBackend,
    MemoryCredentialBackend,
)
from wildwatch_session.config import CredentialBackendKind, Settings, SettingsManager
from wildwatch_session.session import SessionManager
from wildwatch_session.utils import get_logger


logger = get_logger(__name__)


def build_credential_backend(settings: Settings) -> CredentialBackend:
    """Select the persistence medium named by ``settings.credential_backend``."""

    match settings.credential_backend:
        case CredentialBackendKind.KEYRING:
            return KeyringCredentialBackend(
                settings.keyring_service,
                settings.credential_key,
                alias_services=settings.keyring_aliases,
                allow_insecure=settings.allow_insecure_keyring,
            )
        case CredentialBackendKind.FILE:
            return FileCredentialBackend(settings.resolved_credential_path())
        case _:
            return MemoryCredentialBackend()


def build_session_manager(settings: Settings | None = None) -> SessionManager:
    """Construct the process-wide session manager.

    Call once at startup and pass the result to everything that makes
    authenticated calls. Await :meth:`SessionManager.start` on the event loop
    before first use.
    """

    settings = settings or SettingsManager().load()
    backend = build_credential_backend(settings)
    logger.debug(
        "Session manager initialised",
        backend=settings.credential_backend.value,
        identity_base=settings.identity_base,
        lead_time=settings.renewal_lead_time,
    )
    return SessionManager(settings, backend=backend)


__all__ = ["build_credential_backend", "build_session_manager"]
