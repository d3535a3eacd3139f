from __future__ import annotations

import asyncio
import concurrent.futures
import threading
from dataclasses import dataclass
from enum import StrEnum
from typing import Callable

from wildwatch_session.auth.store import CredentialStore
from wildwatch_session.auth.types import Credential
from wildwatch_session.config.settings import DEFAULT_LOGOUT_TIMEOUT
from wildwatch_session.session.coordinator import RenewalCoordinator
from wildwatch_session.session.identity import IdentityGateway
from wildwatch_session.utils import EventHook, get_logger


logger = get_logger(__name__)


class TerminationReason(StrEnum):
    LOGOUT = "logout"
    RENEWAL_FAILED = "renewal_failed"
    REJECTED_AFTER_RETRY = "rejected_after_retry"


@dataclass(frozen=True, slots=True)
class TerminationEvent:
    reason: TerminationReason
    subject: str | None


class SessionTerminator:
    """Ends the session: best-effort server logout, guaranteed local purge.

    :meth:`terminate` may be called from any number of failure sites and
    threads at once; exactly one call performs the purge and emits
    ``logged_out``. The terminator re-arms on the next sign-in.
    """

    def __init__(
        self,
        store: CredentialStore,
        coordinator: RenewalCoordinator,
        identity: IdentityGateway,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        logout_timeout: float = DEFAULT_LOGOUT_TIMEOUT,
    ) -> None:
        self._store = store
        self._coordinator = coordinator
        self._identity = identity
        self._loop = loop
        self._logout_timeout = logout_timeout
        self._lock = threading.RLock()
        self._terminated = False
        self._purge_hooks: list[tuple[str, Callable[[], None]]] = []
        self._pending: set[asyncio.Future[None] | concurrent.futures.Future[None]] = set()
        self.logged_out: EventHook[TerminationEvent] = EventHook()

    @property
    def terminated(self) -> bool:
        return self._terminated

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Loop used for the server logout when terminating from another thread."""
        self._loop = loop

    def register_purge(self, name: str, hook: Callable[[], None]) -> Callable[[], None]:
        """Register extra session-correlated state to wipe on termination."""

        entry = (name, hook)
        with self._lock:
            self._purge_hooks.append(entry)

        def unregister() -> None:
            with self._lock:
                try:
                    self._purge_hooks.remove(entry)
                except ValueError:  # pragma: no cover - best effort cleanup
                    pass

        return unregister

    def rearm(self) -> None:
        with self._lock:
            self._terminated = False

    def terminate(
        self,
        reason: TerminationReason = TerminationReason.LOGOUT,
        *,
        credential: Credential | None = None,
    ) -> bool:
        """End the session. Returns False when it was already terminated.

        ``credential`` names the session being ended when the store has
        already been cleared, as after a failed renewal. The stored credential
        wins when both are present.
        """

        with self._lock:
            if self._terminated:
                logger.debug("Session already terminated", reason=reason.value)
                return False
            self._terminated = True

            credential = self._store.get() or credential
            self._coordinator.reset()
            if credential is not None:
                self._notify_server(credential)
            self._purge()

        subject = credential.subject if credential is not None else None
        logger.info("Session terminated", reason=reason.value, subject=subject)
        self.logged_out.emit(TerminationEvent(reason=reason, subject=subject))
        return True

    async def drain(self) -> None:
        """Wait for outstanding server logout calls."""

        with self._lock:
            pending = list(self._pending)
        if not pending:
            return
        awaitables = [
            asyncio.wrap_future(item)
            if isinstance(item, concurrent.futures.Future)
            else item
            for item in pending
        ]
        await asyncio.gather(*awaitables, return_exceptions=True)

    # Internal --------------------------------------------------------

    def _purge(self) -> None:
        steps: list[tuple[str, Callable[[], None]]] = [
            ("credential-store", self._store.clear),
            ("renewal-timer", self._coordinator.cancel_scheduled),
            *self._purge_hooks,
        ]
        for name, step in steps:
            try:
                step()
            except Exception:  # noqa: BLE001 - remaining steps must still run
                logger.exception("Session purge step failed", step=name)

    def _notify_server(self, credential: Credential) -> None:
        coro = self._send_logout(credential)
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is not None:
            task = running.create_task(coro, name="server-logout")
            self._track(task)
            return
        if self._loop is not None and self._loop.is_running():
            self._track(asyncio.run_coroutine_threadsafe(coro, self._loop))
            return
        coro.close()
        logger.warning("No running event loop; skipping server-side logout")

    def _track(self, future: asyncio.Future[None] | concurrent.futures.Future[None]) -> None:
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)

    async def _send_logout(self, credential: Credential) -> None:
        try:
            await asyncio.wait_for(
                self._identity.logout(credential), timeout=self._logout_timeout
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001 - server logout is best effort
            logger.warning(
                "Server-side logout failed; local session already purged",
                error=f"{type(exc).__name__}: {exc}",
            )


__all__ = ["SessionTerminator", "TerminationEvent", "TerminationReason"]
