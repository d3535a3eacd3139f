from __future__ import annotations

import asyncio
from typing import Any, Callable, Coroutine, TypeVar

import httpx

from wildwatch_session.auth.clock import CredentialClock
from wildwatch_session.auth.store import CredentialBackend, CredentialStore
from wildwatch_session.auth.types import Credential
from wildwatch_session.config.settings import Settings
from wildwatch_session.errors import DecodeError
from wildwatch_session.session.coordinator import RenewalCoordinator, RenewalFailure
from wildwatch_session.session.identity import IdentityClient, IdentityGateway
from wildwatch_session.session.pipeline import (
    RequestPipeline,
    RequestSpec,
    RequestTelemetryEvent,
)
from wildwatch_session.session.terminator import (
    SessionTerminator,
    TerminationEvent,
    TerminationReason,
)
from wildwatch_session.utils import EventHook, Scheduler, bind_session_context, get_logger


logger = get_logger(__name__)

T = TypeVar("T")


class SessionManager:
    """The one session of this process, constructed at startup and injected.

    Owns the credential store, clock, renewal coordinator, request pipeline
    and terminator, and wires renewal failures to termination.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        backend: CredentialBackend | None = None,
        identity: IdentityGateway | None = None,
        client: httpx.AsyncClient | None = None,
        scheduler: Scheduler | None = None,
        clock: CredentialClock | None = None,
        telemetry_callback: Callable[[RequestTelemetryEvent], None] | None = None,
    ) -> None:
        self._settings = settings
        self._loop: asyncio.AbstractEventLoop | None = None
        self._clock = clock or CredentialClock(lead_time=settings.renewal_lead_time)
        self._store = CredentialStore(backend)
        self._owned_identity: IdentityClient | None = None
        if identity is None:
            self._owned_identity = IdentityClient(
                settings.identity_base, timeout=settings.request_timeout
            )
            identity = self._owned_identity
        self._coordinator = RenewalCoordinator(
            self._store, self._clock, identity, scheduler=scheduler
        )
        self._terminator = SessionTerminator(
            self._store,
            self._coordinator,
            identity,
            logout_timeout=settings.logout_timeout,
        )
        self._pipeline = RequestPipeline(
            self._coordinator,
            self._terminator,
            base_url=settings.api_base,
            client=client,
            timeout=settings.request_timeout,
            telemetry_callback=telemetry_callback,
        )
        self._coordinator.failed.subscribe(self._on_renewal_failed)
        self._terminator.logged_out.subscribe(self._on_logged_out)

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def store(self) -> CredentialStore:
        return self._store

    @property
    def clock(self) -> CredentialClock:
        return self._clock

    @property
    def coordinator(self) -> RenewalCoordinator:
        return self._coordinator

    @property
    def pipeline(self) -> RequestPipeline:
        return self._pipeline

    @property
    def terminator(self) -> SessionTerminator:
        return self._terminator

    @property
    def logged_out(self) -> EventHook[TerminationEvent]:
        return self._terminator.logged_out

    def current(self) -> Credential | None:
        return self._store.get()

    async def start(self) -> Credential | None:
        """Bind to the running loop and resume a persisted session, if any."""

        self._loop = asyncio.get_running_loop()
        self._terminator.bind_loop(self._loop)
        credential = self._store.restore(self._clock)
        if credential is None:
            logger.info("No persisted session to resume")
            return None
        self._terminator.rearm()
        self._coordinator.schedule_proactive(credential)
        return credential

    async def sign_in(self, raw: str) -> Credential | None:
        """Adopt a credential issued by the login flow.

        Undecodable input is treated as no credential: the session is cleared
        and None returned.
        """

        try:
            credential = self._clock.decode(raw)
        except DecodeError as exc:
            logger.warning("Sign-in credential rejected", reason=str(exc))
            self._coordinator.reset()
            self._store.clear()
            return None
        self._terminator.rearm()
        self._coordinator.adopt(credential)
        bind_session_context(credential.subject)
        logger.info("Signed in", subject=credential.subject)
        return credential

    def sign_out(self) -> bool:
        return self._terminator.terminate(TerminationReason.LOGOUT)

    async def ensure_valid(self) -> Credential:
        return await self._coordinator.ensure_valid()

    async def execute(self, spec: RequestSpec) -> httpx.Response:
        return await self._pipeline.execute(spec)

    async def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        return await self._pipeline.execute(RequestSpec(method=method, path=path, **kwargs))

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self._pipeline.get(path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self._pipeline.post(path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self._pipeline.put(path, **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self._pipeline.patch(path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self._pipeline.delete(path, **kwargs)

    def ensure_valid_blocking(self, timeout: float | None = None) -> Credential:
        """Thread-side :meth:`ensure_valid` for a session owned by another thread's loop."""
        return self._run_threadsafe(self._coordinator.ensure_valid, timeout)

    def execute_blocking(
        self, spec: RequestSpec, timeout: float | None = None
    ) -> httpx.Response:
        return self._run_threadsafe(lambda: self._pipeline.execute(spec), timeout)

    async def aclose(self) -> None:
        self._coordinator.cancel_scheduled()
        await self._terminator.drain()
        await self._coordinator.drain()
        await self._pipeline.aclose()
        if self._owned_identity is not None:
            await self._owned_identity.aclose()

    # Internal --------------------------------------------------------

    def _on_renewal_failed(self, failure: RenewalFailure) -> None:
        self._terminator.terminate(
            TerminationReason.RENEWAL_FAILED, credential=failure.credential
        )

    def _on_logged_out(self, event: TerminationEvent) -> None:
        bind_session_context(None)

    def _run_threadsafe(
        self, factory: Callable[[], Coroutine[Any, Any, T]], timeout: float | None
    ) -> T:
        loop = self._loop
        if loop is None or not loop.is_running():
            raise RuntimeError("SessionManager.start() has not run on an active loop")
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            raise RuntimeError("Blocking session calls cannot run on the session's loop")
        future = asyncio.run_coroutine_threadsafe(factory(), loop)
        return future.result(timeout)


__all__ = ["SessionManager"]
