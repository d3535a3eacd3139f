from __future__ import annotations

from pathlib import Path

import pytest

from wildwatch_session.auth import CredentialStore, MemoryCredentialBackend
from wildwatch_session.session import RenewalCoordinator, SessionTerminator
from wildwatch_session.utils import LoggingOptions, configure_logging

from tests.factories import FakeIdentity, ManualScheduler, ManualTime, make_clock


@pytest.fixture(scope="session", autouse=True)
def _isolated_logging(tmp_path_factory: pytest.TempPathFactory) -> Path:
    """Keep test log output out of the user's cache directory."""

    log_path = tmp_path_factory.mktemp("logs") / "wildwatch-session.log"
    return configure_logging(LoggingOptions(level="DEBUG", log_path=log_path))


@pytest.fixture(autouse=True)
def _no_insecure_keyring_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("WILDWATCH_ALLOW_INSECURE_KEYRING", raising=False)


@pytest.fixture
def manual_time() -> ManualTime:
    return ManualTime()


@pytest.fixture
def scheduler(manual_time: ManualTime) -> ManualScheduler:
    return ManualScheduler(manual_time)


@pytest.fixture
def backend() -> MemoryCredentialBackend:
    return MemoryCredentialBackend()


@pytest.fixture
def store(backend: MemoryCredentialBackend) -> CredentialStore:
    return CredentialStore(backend)


@pytest.fixture
def identity(manual_time: ManualTime) -> FakeIdentity:
    return FakeIdentity(manual_time)


@pytest.fixture
def coordinator(
    store: CredentialStore,
    manual_time: ManualTime,
    identity: FakeIdentity,
    scheduler: ManualScheduler,
) -> RenewalCoordinator:
    return RenewalCoordinator(
        store, make_clock(manual_time), identity, scheduler=scheduler
    )


@pytest.fixture
def terminator(
    store: CredentialStore,
    coordinator: RenewalCoordinator,
    identity: FakeIdentity,
) -> SessionTerminator:
    return SessionTerminator(store, coordinator, identity, logout_timeout=0.5)
