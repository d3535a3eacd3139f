"""Credential model, expiry clock and persistence."""

from .backends import (
    CookieCredentialBackend,
    FileCredentialBackend,
    InsecureKeyringError,
    KeyringCredentialBackend,
)
from .clock import CredentialClock
from .store import CredentialBackend, CredentialStore, MemoryCredentialBackend
from .types import Credential, CredentialClaims, RefreshResponse

__all__ = [
    "CookieCredentialBackend",
    "Credential",
    "CredentialBackend",
    "CredentialClaims",
    "CredentialClock",
    "CredentialStore",
    "FileCredentialBackend",
    "InsecureKeyringError",
    "KeyringCredentialBackend",
    "MemoryCredentialBackend",
    "RefreshResponse",
]
