"""Configuration helpers for the WildWatch session manager."""

from .settings import (
    APP_NAME,
    CredentialBackendKind,
    Settings,
    SettingsManager,
)

__all__ = [
    "APP_NAME",
    "CredentialBackendKind",
    "Settings",
    "SettingsManager",
]
