from __future__ import annotations

import threading
from typing import Callable, Protocol

from wildwatch_session.auth.clock import CredentialClock
from wildwatch_session.auth.types import Credential
from wildwatch_session.errors import DecodeError, StorageError
from wildwatch_session.utils import EventHook, get_logger


logger = get_logger(__name__)


class CredentialBackend(Protocol):
    """Persistence medium holding the raw credential string under one key."""

    def read(self) -> str | None: ...

    def write(self, raw: str) -> None: ...

    def erase(self) -> None: ...


class MemoryCredentialBackend:
    """Keeps the raw credential in process memory only."""

    def __init__(self, initial: str | None = None) -> None:
        self._value = initial

    def read(self) -> str | None:
        return self._value

    def write(self, raw: str) -> None:
        self._value = raw

    def erase(self) -> None:
        self._value = None


class CredentialStore:
    """Process-wide holder of the current credential.

    The in-memory copy is authoritative. The backend mirrors it so a session
    survives restarts, but a failing backend never rolls back or corrupts the
    in-memory value; failures are logged and kept in ``last_storage_error``.
    """

    def __init__(self, backend: CredentialBackend | None = None) -> None:
        self._backend: CredentialBackend = backend or MemoryCredentialBackend()
        self._lock = threading.RLock()
        self._credential: Credential | None = None
        self._last_storage_error: StorageError | None = None
        self.changed: EventHook[Credential | None] = EventHook()
        self.cleared: EventHook[Credential] = EventHook()

    @property
    def backend(self) -> CredentialBackend:
        return self._backend

    @property
    def last_storage_error(self) -> StorageError | None:
        return self._last_storage_error

    def get(self) -> Credential | None:
        with self._lock:
            return self._credential

    def set(self, credential: Credential) -> None:
        with self._lock:
            self._credential = credential
            self._persist(lambda: self._backend.write(credential.token), "write")
        logger.debug(
            "Stored credential",
            subject=credential.subject,
            expires_at=credential.expires_at,
        )
        self.changed.emit(credential)

    def clear(self) -> None:
        with self._lock:
            previous = self._credential
            self._credential = None
            self._persist(self._backend.erase, "erase")
        if previous is None:
            return
        logger.info("Cleared stored credential", subject=previous.subject)
        self.changed.emit(None)
        self.cleared.emit(previous)

    def restore(self, clock: CredentialClock) -> Credential | None:
        """Load a credential persisted by a previous process.

        An undecodable value is erased from the backend and treated as absent.
        """

        with self._lock:
            if self._credential is not None:
                return self._credential
            try:
                raw = self._backend.read()
            except StorageError as exc:
                self._record_failure(exc, "read")
                return None
            if raw is None:
                return None
            try:
                credential = clock.decode(raw)
            except DecodeError as exc:
                logger.warning("Persisted credential is undecodable", reason=str(exc))
                self._persist(self._backend.erase, "erase")
                return None
            self._credential = credential
        logger.info(
            "Restored persisted credential",
            subject=credential.subject,
            expires_at=credential.expires_at,
        )
        self.changed.emit(credential)
        return credential

    # Internal --------------------------------------------------------

    def _persist(self, operation: Callable[[], None], action: str) -> None:
        try:
            operation()
        except StorageError as exc:
            self._record_failure(exc, action)
        else:
            self._last_storage_error = None

    def _record_failure(self, exc: StorageError, action: str) -> None:
        self._last_storage_error = exc
        logger.warning(
            "Credential backend failure; keeping in-memory state",
            action=action,
            backend=type(self._backend).__name__,
            error=str(exc),
        )


__all__ = ["CredentialBackend", "CredentialStore", "MemoryCredentialBackend"]
