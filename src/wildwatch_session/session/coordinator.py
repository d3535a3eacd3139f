from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from enum import StrEnum
from typing import Awaitable

from wildwatch_session.auth.clock import CredentialClock
from wildwatch_session.auth.store import CredentialStore
from wildwatch_session.auth.types import Credential
from wildwatch_session.errors import (
    DecodeError,
    MissingCredentialError,
    RenewalError,
    RenewalRejected,
    SessionError,
)
from wildwatch_session.session.identity import IdentityGateway
from wildwatch_session.utils import EventHook, LoopScheduler, Scheduler, TimerHandle, get_logger


logger = get_logger(__name__)


class RenewalPhase(StrEnum):
    IDLE = "idle"
    RENEWING = "renewing"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class RenewalState:
    phase: RenewalPhase = RenewalPhase.IDLE
    future: asyncio.Future[Credential] | None = None
    error: SessionError | None = None


@dataclass(frozen=True, slots=True)
class RenewalFailure:
    """Payload of the ``failed`` hook."""

    error: SessionError
    credential: Credential


@dataclass(frozen=True, slots=True)
class ScheduledRenewal:
    generation: int
    fire_at: float
    handle: TimerHandle


class RenewalCoordinator:
    """Single-flight renewal of the session credential.

    Every path that needs a fresh credential (stale credential on a request,
    a 401 response, the proactive timer) funnels through one shared future
    while a renewal is in flight, so the refresh endpoint is called once no
    matter how many callers are waiting.

    Coroutine methods must run on the loop that owns the session. Threads
    reach the coordinator through :class:`SessionManager`'s blocking helpers.
    """

    def __init__(
        self,
        store: CredentialStore,
        clock: CredentialClock,
        identity: IdentityGateway,
        *,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._identity = identity
        self._scheduler = scheduler or LoopScheduler()
        self._lock = threading.RLock()
        self._state = RenewalState()
        self._scheduled: ScheduledRenewal | None = None
        self._generation = 0
        # Bumped whenever the session is reset; a renewal started under an
        # older epoch must not commit its result.
        self._epoch = 0
        self._exchange_count = 0
        self._background: set[asyncio.Task[object]] = set()
        self.renewed: EventHook[Credential] = EventHook()
        self.failed: EventHook[RenewalFailure] = EventHook()

    # Public API ------------------------------------------------------

    @property
    def state(self) -> RenewalState:
        return self._state

    @property
    def scheduled(self) -> ScheduledRenewal | None:
        return self._scheduled

    @property
    def exchange_count(self) -> int:
        """Number of refresh exchanges started by this coordinator."""
        return self._exchange_count

    def adopt(self, credential: Credential) -> None:
        """Commit a freshly issued credential (sign-in) and arm its timer."""

        with self._lock:
            self._epoch += 1
            self._state = RenewalState()
            self._store.set(credential)
            self.schedule_proactive(credential)

    async def ensure_valid(self) -> Credential:
        """Return a credential that is not inside its renewal window.

        Raises:
            MissingCredentialError: Nothing is stored.
            RenewalError: The renewal this call started or joined failed.
        """

        credential = self._store.get()
        if credential is None:
            raise MissingCredentialError()
        if not self._clock.is_expiring_soon(credential):
            return credential
        logger.debug(
            "Credential inside renewal window",
            subject=credential.subject,
            remaining=round(credential.seconds_remaining(self._clock.now()), 1),
        )
        return await self._join_renewal()

    async def force_renew(self, rejected: Credential | None = None) -> Credential:
        """Renew unconditionally, joining any renewal already in flight.

        When ``rejected`` is given and the store already holds a different
        credential, that newer credential is returned without another exchange.
        """

        if rejected is not None:
            current = self._store.get()
            if current is not None and current.token != rejected.token:
                logger.debug("Rejected credential already superseded")
                return current
        return await self._join_renewal(rejected)

    def current(self) -> Credential | None:
        return self._store.get()

    def schedule_proactive(self, credential: Credential) -> ScheduledRenewal | None:
        """Arm the one-shot renewal timer for ``credential``.

        Any previous timer is cancelled first. Nothing is armed when the
        credential is already inside its renewal window; the next
        :meth:`ensure_valid` renews it instead.
        """

        with self._lock:
            self._cancel_scheduled_locked()
            delay = self._clock.renewal_delay(credential)
            if delay <= 0:
                logger.debug(
                    "Credential already inside renewal window; timer not armed",
                    subject=credential.subject,
                )
                return None
            self._generation += 1
            generation = self._generation
            handle = self._scheduler.call_later(
                delay, lambda: self._on_timer(generation)
            )
            self._scheduled = ScheduledRenewal(
                generation=generation,
                fire_at=credential.expires_at - self._clock.lead_time,
                handle=handle,
            )
            logger.debug(
                "Armed proactive renewal",
                delay=round(delay, 3),
                subject=credential.subject,
            )
            return self._scheduled

    def cancel_scheduled(self) -> None:
        with self._lock:
            self._cancel_scheduled_locked()

    def reset(self) -> None:
        """Cancel the timer and orphan any in-flight renewal.

        Waiters on an orphaned renewal still receive its outcome, but a
        successful result is discarded instead of being stored.
        """

        with self._lock:
            self._epoch += 1
            self._cancel_scheduled_locked()
            if self._state.phase is RenewalPhase.RENEWING:
                self._state = RenewalState()

    async def drain(self) -> None:
        """Wait for background renewals started by the timer."""

        with self._lock:
            pending: list[Awaitable[object]] = list(self._background)
            if self._state.future is not None:
                pending.append(self._state.future)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # Internal --------------------------------------------------------

    async def _join_renewal(self, rejected: Credential | None = None) -> Credential:
        future, epoch = self._start_or_join()
        try:
            # A cancelled waiter must not cancel the exchange others share.
            return await asyncio.shield(future)
        except SessionError:
            successor = self._successor(epoch, rejected)
            if successor is None:
                raise
            logger.info(
                "Renewal outcome superseded by a newer session",
                subject=successor.subject,
            )
            return successor

    def _successor(
        self, epoch: int, rejected: Credential | None
    ) -> Credential | None:
        """The credential committed after ``epoch`` ended, if any."""

        with self._lock:
            if self._epoch == epoch:
                return None
            current = self._store.get()
        if current is None:
            return None
        if rejected is not None and current.token == rejected.token:
            return None
        return current

    def _start_or_join(self) -> tuple[asyncio.Future[Credential], int]:
        with self._lock:
            state = self._state
            if state.phase is RenewalPhase.RENEWING and state.future is not None:
                logger.debug("Joining in-flight renewal")
                return state.future, self._epoch
            current = self._store.get()
            if current is None:
                raise MissingCredentialError("No credential available to renew")
            self._exchange_count += 1
            task = asyncio.get_running_loop().create_task(
                self._exchange(current, self._epoch),
                name="credential-renewal",
            )
            task.add_done_callback(_retrieve_result)
            self._state = RenewalState(RenewalPhase.RENEWING, future=task)
            return task, self._epoch

    async def _exchange(self, current: Credential, epoch: int) -> Credential:
        logger.info("Renewing session credential", subject=current.subject)
        try:
            raw = await self._identity.refresh(current)
            try:
                credential = self._clock.decode(raw)
            except DecodeError as exc:
                raise RenewalRejected(
                    "Identity provider returned an undecodable credential"
                ) from exc
        except asyncio.CancelledError:
            with self._lock:
                if self._epoch == epoch:
                    self._state = RenewalState()
            raise
        except SessionError as exc:
            self._fail(exc, current, epoch)
            raise
        except Exception as exc:  # noqa: BLE001 - any gateway failure ends the renewal
            error = RenewalError(f"Unexpected renewal failure: {exc}", inner_error=exc)
            self._fail(error, current, epoch)
            raise error from exc

        with self._lock:
            if self._epoch != epoch:
                logger.info(
                    "Discarding renewed credential for an ended session",
                    subject=credential.subject,
                )
                raise MissingCredentialError("Session ended while renewal was in flight")
            self._store.set(credential)
            self.schedule_proactive(credential)
            self._state = RenewalState()
        logger.info(
            "Credential renewed",
            subject=credential.subject,
            expires_at=credential.expires_at,
        )
        self.renewed.emit(credential)
        return credential

    def _fail(self, error: SessionError, credential: Credential, epoch: int) -> None:
        with self._lock:
            if self._epoch != epoch:
                logger.debug("Ignoring failure from an orphaned renewal")
                return
            self._store.clear()
            self._cancel_scheduled_locked()
            self._state = RenewalState(RenewalPhase.FAILED, error=error)
        logger.warning(
            "Credential renewal failed",
            category=error.category.value,
            status=error.status_code,
            error=str(error),
        )
        self.failed.emit(RenewalFailure(error=error, credential=credential))

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            scheduled = self._scheduled
            if scheduled is None or scheduled.generation != generation:
                logger.debug("Ignoring stale renewal timer", generation=generation)
                return
            self._scheduled = None
            if self._store.get() is None:
                return
        task = asyncio.get_running_loop().create_task(
            self._run_proactive(), name="proactive-renewal"
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _run_proactive(self) -> None:
        logger.info("Proactive renewal timer fired")
        try:
            await self.force_renew()
        except SessionError as exc:
            logger.warning("Proactive renewal did not complete", error=str(exc))

    def _cancel_scheduled_locked(self) -> None:
        if self._scheduled is not None:
            self._scheduled.handle.cancel()
            self._scheduled = None


def _retrieve_result(task: asyncio.Task[Credential]) -> None:
    # Mark the outcome as observed even when every waiter was cancelled.
    if not task.cancelled():
        task.exception()


__all__ = [
    "RenewalCoordinator",
    "RenewalFailure",
    "RenewalPhase",
    "RenewalState",
    "ScheduledRenewal",
]
