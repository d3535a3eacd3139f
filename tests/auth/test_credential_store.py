from __future__ import annotations

from wildwatch_session.auth import Credential, CredentialStore, MemoryCredentialBackend
from wildwatch_session.errors import StorageError

from tests.factories import BASE_TIME, FailingBackend, make_clock, make_credential, make_jwt


def test_set_persists_and_notifies(store: CredentialStore, backend: MemoryCredentialBackend) -> None:
    changes: list[Credential | None] = []
    store.changed.subscribe(changes.append)
    credential = make_credential()

    store.set(credential)

    assert store.get() is credential
    assert backend.read() == credential.token
    assert changes == [credential]


def test_clear_is_idempotent(store: CredentialStore, backend: MemoryCredentialBackend) -> None:
    cleared: list[Credential] = []
    changes: list[Credential | None] = []
    store.cleared.subscribe(cleared.append)
    store.changed.subscribe(changes.append)
    credential = make_credential()
    store.set(credential)

    store.clear()
    store.clear()

    assert store.get() is None
    assert backend.read() is None
    assert cleared == [credential]
    assert changes == [credential, None]


def test_clear_erases_backend_even_when_memory_is_empty() -> None:
    backend = MemoryCredentialBackend(initial="left-over")
    store = CredentialStore(backend)

    store.clear()

    assert backend.read() is None


def test_backend_failure_keeps_in_memory_credential() -> None:
    backend = FailingBackend()
    store = CredentialStore(backend)
    credential = make_credential()

    store.set(credential)

    assert store.get() is credential
    assert isinstance(store.last_storage_error, StorageError)
    assert backend.write_attempts == 1

    store.clear()
    assert store.get() is None
    assert backend.erase_attempts == 1


def test_successful_write_clears_previous_storage_error() -> None:
    backend = MemoryCredentialBackend()
    store = CredentialStore(backend)
    store._last_storage_error = StorageError("stale")  # noqa: SLF001

    store.set(make_credential())

    assert store.last_storage_error is None


def test_restore_loads_persisted_credential() -> None:
    raw = make_jwt(BASE_TIME + 1800, sub="field-ops")
    store = CredentialStore(MemoryCredentialBackend(initial=raw))
    changes: list[Credential | None] = []
    store.changed.subscribe(changes.append)

    restored = store.restore(make_clock())

    assert restored is not None
    assert restored.subject == "field-ops"
    assert store.get() == restored
    assert changes == [restored]


def test_restore_keeps_existing_memory_value() -> None:
    store = CredentialStore(MemoryCredentialBackend(initial=make_jwt(BASE_TIME + 10)))
    credential = make_credential()
    store.set(credential)

    assert store.restore(make_clock()) is credential


def test_restore_erases_undecodable_value() -> None:
    backend = MemoryCredentialBackend(initial="definitely-not-a-token")
    store = CredentialStore(backend)

    assert store.restore(make_clock()) is None
    assert store.get() is None
    assert backend.read() is None


def test_restore_treats_read_failure_as_absent() -> None:
    backend = FailingBackend(stored=make_jwt(BASE_TIME + 10), fail_reads=True)
    store = CredentialStore(backend)

    assert store.restore(make_clock()) is None
    assert isinstance(store.last_storage_error, StorageError)


def test_store_defaults_to_memory_backend() -> None:
    store = CredentialStore()
    assert isinstance(store.backend, MemoryCredentialBackend)
    assert store.get() is None
