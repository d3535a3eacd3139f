from __future__ import annotations

import os
from pathlib import Path
from typing import Final, Sequence

import httpx
import keyring
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError, PasswordDeleteError

from wildwatch_session.config.settings import APP_NAME, CREDENTIAL_KEY
from wildwatch_session.errors import StorageError
from wildwatch_session.utils import get_logger


logger = get_logger(__name__)

_ALLOW_INSECURE_ENV: Final[str] = "WILDWATCH_ALLOW_INSECURE_KEYRING"


class InsecureKeyringError(RuntimeError):
    """Raised when the active keyring backend does not provide encryption."""


def _describe_backend(backend: KeyringBackend) -> str:
    return f"{backend.__class__.__module__}.{backend.__class__.__name__}"


def _is_secure_backend(backend: KeyringBackend) -> bool:
    secure_flag = getattr(backend, "secure_storage", None)
    if secure_flag is True:
        return True
    if secure_flag is False:
        return False

    name = backend.__class__.__name__.lower()
    module = backend.__class__.__module__
    if any(
        token in name
        for token in ("plaintext", "unencrypted", "insecure", "simplekeyring")
    ):
        return False
    if module.startswith("keyring.backends.chainer"):
        children = getattr(backend, "backends", ())
        if not children:
            return False
        return all(_is_secure_backend(child) for child in children)
    if module.startswith(
        (
            "keyring.backends.file",
            "keyrings.alt.file",
            "keyring.backends.null",
            "keyring.backends.fail",
        )
    ):
        return False
    return True


def _allow_insecure_setting(flag: bool | None) -> bool:
    if flag is not None:
        return flag
    env = os.getenv(_ALLOW_INSECURE_ENV)
    if env is None:
        return False
    return env.strip().lower() in {"1", "true", "yes", "on"}


class KeyringCredentialBackend:
    """Persist the credential in the OS keyring.

    ``alias_services`` lists other service names the credential may have been
    written under by earlier builds; :meth:`erase` removes the key from all of
    them so a logout cannot leave a stale copy behind.
    """

    def __init__(
        self,
        service_name: str = APP_NAME,
        key: str = CREDENTIAL_KEY,
        *,
        alias_services: Sequence[str] = (),
        backend: KeyringBackend | None = None,
        allow_insecure: bool | None = None,
    ) -> None:
        self._service_name = service_name
        self._key = key
        self._aliases = tuple(
            alias for alias in alias_services if alias and alias != service_name
        )
        self._backend = backend or keyring.get_keyring()
        self._enforce_backend_security(allow_insecure)

        logger.info(
            "Keyring backend initialized",
            backend=_describe_backend(self._backend),
            service=service_name,
            secure=_is_secure_backend(self._backend),
        )

    @property
    def services(self) -> tuple[str, ...]:
        return (self._service_name, *self._aliases)

    def read(self) -> str | None:
        try:
            return self._backend.get_password(self._service_name, self._key)
        except KeyringError as exc:
            raise StorageError(f"Keyring read failed: {exc}") from exc

    def write(self, raw: str) -> None:
        try:
            self._backend.set_password(self._service_name, self._key, raw)
        except KeyringError as exc:
            raise StorageError(f"Keyring write failed: {exc}") from exc

    def erase(self) -> None:
        failures: list[str] = []
        for service in self.services:
            try:
                self._backend.delete_password(service, self._key)
            except PasswordDeleteError:
                continue
            except KeyringError as exc:
                failures.append(f"{service}: {exc}")
        if failures:
            raise StorageError("Keyring erase failed for " + "; ".join(failures))

    # ----------------------------------------------------------------- Helpers

    def _enforce_backend_security(self, allow_insecure: bool | None) -> None:
        descriptor = _describe_backend(self._backend)
        if _is_secure_backend(self._backend):
            logger.debug("Using secure keyring backend", backend=descriptor)
            return
        if _allow_insecure_setting(allow_insecure):
            logger.warning(
                "Proceeding with insecure keyring backend due to override",
                backend=descriptor,
                env=_ALLOW_INSECURE_ENV,
            )
            return
        raise InsecureKeyringError(
            f"Keyring backend {descriptor} does not provide encrypted storage. "
            f"Set {_ALLOW_INSECURE_ENV}=1 to bypass this check for development."
        )


class FileCredentialBackend:
    """Persist the credential to a file readable only by the current user."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> str | None:
        if not self._path.exists():
            return None
        try:
            value = self._path.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageError(f"Could not read {self._path}: {exc}") from exc
        return value or None

    def write(self, raw: str) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self._path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(raw)
        except OSError as exc:
            raise StorageError(f"Could not write {self._path}: {exc}") from exc

    def erase(self) -> None:
        """Securely wipe the credential file."""

        if not self._path.exists():
            return
        try:
            size = self._path.stat().st_size
            if size > 0:
                with self._path.open("r+b") as handle:
                    handle.write(os.urandom(size))
                    handle.flush()
                    os.fsync(handle.fileno())
            self._path.unlink()
            logger.info("Wiped credential file", path=str(self._path))
        except FileNotFoundError:  # pragma: no cover - concurrent removal
            return
        except OSError as exc:
            raise StorageError(f"Could not erase {self._path}: {exc}") from exc


class CookieCredentialBackend:
    """Keep the credential as a cookie in an ``httpx.Cookies`` jar.

    Browsers may hold the same cookie under several domain/path variants
    (``host``, ``.host``, host-only). Reads prefer the configured domain;
    :meth:`erase` removes every variant carrying the key.
    """

    def __init__(
        self,
        cookies: httpx.Cookies,
        key: str = CREDENTIAL_KEY,
        *,
        domain: str = "",
        path: str = "/",
    ) -> None:
        self._cookies = cookies
        self._key = key
        self._domain = domain
        self._path = path

    @property
    def cookies(self) -> httpx.Cookies:
        return self._cookies

    def read(self) -> str | None:
        fallback: str | None = None
        for cookie in self._cookies.jar:
            if cookie.name != self._key or cookie.value is None:
                continue
            if cookie.domain.lstrip(".") == self._domain.lstrip("."):
                return cookie.value
            fallback = fallback or cookie.value
        return fallback

    def write(self, raw: str) -> None:
        self.erase()
        self._cookies.set(self._key, raw, domain=self._domain, path=self._path)

    def erase(self) -> None:
        matches = [
            (cookie.domain, cookie.path)
            for cookie in self._cookies.jar
            if cookie.name == self._key
        ]
        for domain, path in matches:
            try:
                self._cookies.jar.clear(domain, path, self._key)
            except KeyError:  # pragma: no cover - already removed
                continue


__all__ = [
    "CookieCredentialBackend",
    "FileCredentialBackend",
    "InsecureKeyringError",
    "KeyringCredentialBackend",
]
