from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from dotenv import load_dotenv
from platformdirs import user_cache_dir, user_config_dir

APP_NAME = "WildWatch"
ENV_PREFIX = "WILDWATCH_"
ENV_FILE_NAME = "session.env"
CREDENTIAL_KEY = "token"
CREDENTIAL_FILE_NAME = "credential.bin"

DEFAULT_IDENTITY_BASE = "http://localhost:8080/api"
DEFAULT_API_BASE = "http://localhost:8080"
DEFAULT_RENEWAL_LEAD_SECONDS = 5 * 60.0
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_LOGOUT_TIMEOUT = 5.0


class CredentialBackendKind(StrEnum):
    KEYRING = "keyring"
    FILE = "file"
    MEMORY = "memory"


def _config_dir() -> Path:
    path = Path(user_config_dir(APP_NAME, roaming=True))
    path.mkdir(parents=True, exist_ok=True)
    return path


def _cache_dir() -> Path:
    path = Path(user_cache_dir(APP_NAME))
    path.mkdir(parents=True, exist_ok=True)
    return path


def config_dir() -> Path:
    return _config_dir()


def cache_dir() -> Path:
    return _cache_dir()


def log_dir() -> Path:
    path = cache_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def runtime_dir() -> Path:
    path = cache_dir() / "runtime"
    path.mkdir(parents=True, exist_ok=True)
    return path


def _env_file_path(explicit: Path | None) -> Path:
    if explicit is not None:
        return explicit
    return _config_dir() / ENV_FILE_NAME


@dataclass(slots=True)
class Settings:
    """Endpoints, timings and persistence options for the session manager.

    ``identity_base`` hosts the ``/auth/refresh`` and ``/auth/logout``
    endpoints; ``api_base`` is prepended to relative paths sent through the
    request pipeline.
    """

    identity_base: str = DEFAULT_IDENTITY_BASE
    api_base: str = DEFAULT_API_BASE
    renewal_lead_time: float = DEFAULT_RENEWAL_LEAD_SECONDS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    logout_timeout: float = DEFAULT_LOGOUT_TIMEOUT
    credential_key: str = CREDENTIAL_KEY
    credential_backend: CredentialBackendKind = CredentialBackendKind.KEYRING
    credential_path: Path | None = None
    keyring_service: str = APP_NAME
    keyring_aliases: list[str] = field(default_factory=list)
    allow_insecure_keyring: bool | None = None

    def identity_url(self, path: str) -> str:
        return f"{self.identity_base.rstrip('/')}/{path.lstrip('/')}"

    def resolved_credential_path(self) -> Path:
        """Return the credential file location, defaulting to the runtime dir."""
        if self.credential_path is not None:
            return self.credential_path
        return runtime_dir() / CREDENTIAL_FILE_NAME


class SettingsManager:
    """Load and persist session settings with environment overrides."""

    def __init__(self, env_file: Path | None = None) -> None:
        self._env_file = _env_file_path(env_file)

    @property
    def env_file(self) -> Path:
        return self._env_file

    def load(self) -> Settings:
        """Load settings from environment, falling back to persisted file."""
        load_dotenv(self._env_file, override=False)

        settings = Settings()

        identity_base = self._get_env("IDENTITY_BASE")
        if identity_base:
            settings.identity_base = identity_base.rstrip("/")
        api_base = self._get_env("API_BASE")
        if api_base:
            settings.api_base = api_base.rstrip("/")

        settings.renewal_lead_time = self._get_float(
            "RENEWAL_LEAD_SECONDS", settings.renewal_lead_time
        )
        settings.request_timeout = self._get_float(
            "REQUEST_TIMEOUT", settings.request_timeout
        )
        settings.logout_timeout = self._get_float(
            "LOGOUT_TIMEOUT", settings.logout_timeout
        )

        credential_key = self._get_env("CREDENTIAL_KEY")
        if credential_key:
            settings.credential_key = credential_key

        backend = self._get_env("CREDENTIAL_BACKEND")
        if backend:
            try:
                settings.credential_backend = CredentialBackendKind(
                    backend.strip().lower()
                )
            except ValueError:
                _warn("Unknown credential backend; using default", value=backend)

        credential_path = self._get_env("CREDENTIAL_PATH")
        if credential_path:
            settings.credential_path = Path(credential_path).expanduser()

        service = self._get_env("KEYRING_SERVICE")
        if service:
            settings.keyring_service = service
        aliases = self._get_env("KEYRING_ALIASES")
        if aliases:
            settings.keyring_aliases = [
                alias.strip() for alias in aliases.split(";") if alias.strip()
            ]

        insecure = self._get_env("ALLOW_INSECURE_KEYRING")
        if insecure is not None:
            settings.allow_insecure_keyring = insecure.strip().lower() in {
                "1",
                "true",
                "yes",
                "on",
            }

        return settings

    def save(self, settings: Settings) -> None:
        """Persist core configuration fields to the managed env file."""
        self._env_file.parent.mkdir(parents=True, exist_ok=True)
        content = [
            f"{ENV_PREFIX}IDENTITY_BASE={settings.identity_base}",
            f"{ENV_PREFIX}API_BASE={settings.api_base}",
            f"{ENV_PREFIX}RENEWAL_LEAD_SECONDS={settings.renewal_lead_time}",
            f"{ENV_PREFIX}REQUEST_TIMEOUT={settings.request_timeout}",
            f"{ENV_PREFIX}LOGOUT_TIMEOUT={settings.logout_timeout}",
            f"{ENV_PREFIX}CREDENTIAL_KEY={settings.credential_key}",
            f"{ENV_PREFIX}CREDENTIAL_BACKEND={settings.credential_backend.value}",
            f"{ENV_PREFIX}CREDENTIAL_PATH={settings.credential_path or ''}",
            f"{ENV_PREFIX}KEYRING_SERVICE={settings.keyring_service}",
            f"{ENV_PREFIX}KEYRING_ALIASES={';'.join(settings.keyring_aliases)}",
        ]
        self._env_file.write_text("\n".join(content) + "\n", encoding="utf-8")

    def _get_env(self, name: str) -> str | None:
        return os.getenv(f"{ENV_PREFIX}{name}") or None

    def _get_float(self, name: str, default: float) -> float:
        raw = self._get_env(name)
        if raw is None:
            return default
        try:
            value = float(raw)
        except ValueError:
            _warn("Ignoring non-numeric setting", name=name, value=raw)
            return default
        if value < 0:
            _warn("Ignoring negative setting", name=name, value=raw)
            return default
        return value


def _warn(message: str, **fields: object) -> None:
    # Deferred import: the logging module reads log_dir() from this module.
    from wildwatch_session.utils.logging import get_logger

    get_logger(__name__).warning(message, **fields)


__all__ = [
    "APP_NAME",
    "CREDENTIAL_KEY",
    "CredentialBackendKind",
    "ENV_PREFIX",
    "Settings",
    "SettingsManager",
    "cache_dir",
    "config_dir",
    "log_dir",
    "runtime_dir",
]
