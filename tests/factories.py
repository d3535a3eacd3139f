from __future__ import annotations

import asyncio
import base64
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from wildwatch_session.auth import Credential, CredentialClock
from wildwatch_session.config import CredentialBackendKind, Settings
from wildwatch_session.errors import StorageError


BASE_TIME = 1_700_000_000.0
IDENTITY_BASE = "https://wildwatch.test/api"
API_BASE = "https://wildwatch.test"

_HEADER = {"alg": "HS256", "typ": "JWT"}


def _b64(payload: dict[str, object]) -> str:
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def make_jwt(
    exp: float,
    *,
    sub: str | None = "ranger@wildwatch.test",
    iat: float | None = None,
    **claims: object,
) -> str:
    """Return an unsigned-but-well-formed token carrying the given claims."""

    payload: dict[str, object] = {"exp": exp, **claims}
    if sub is not None:
        payload["sub"] = sub
    if iat is not None:
        payload["iat"] = iat
    return f"{_b64(_HEADER)}.{_b64(payload)}.c2lnbmF0dXJlLXBsYWNlaG9sZGVy"


def make_credential(
    expires_in: float = 3600,
    *,
    now: float = BASE_TIME,
    sub: str | None = "ranger@wildwatch.test",
) -> Credential:
    expires_at = now + expires_in
    return Credential(
        token=make_jwt(expires_at, sub=sub, iat=now),
        expires_at=expires_at,
        subject=sub,
        issued_at=now,
    )


def make_settings(tmp_path: Path, **overrides: object) -> Settings:
    """Build Settings that never touch the real keyring or user directories."""

    settings = Settings(
        identity_base=IDENTITY_BASE,
        api_base=API_BASE,
        credential_backend=CredentialBackendKind.MEMORY,
        credential_path=tmp_path / "credential.bin",
    )
    for key, value in overrides.items():
        setattr(settings, key, value)
    return settings


class ManualTime:
    """Wall clock that only moves when told to."""

    def __init__(self, start: float = BASE_TIME) -> None:
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


def make_clock(time: ManualTime | None = None, lead_time: float = 300.0) -> CredentialClock:
    return CredentialClock(lead_time=lead_time, now=time or ManualTime())


@dataclass
class ManualTimerHandle:
    when: float
    callback: Callable[[], None]
    _cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class ManualScheduler:
    """Scheduler driven by :class:`ManualTime`; callbacks fire on :meth:`advance`."""

    time: ManualTime
    handles: list[ManualTimerHandle] = field(default_factory=list)

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTimerHandle:
        handle = ManualTimerHandle(when=self.time() + delay, callback=callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> list[ManualTimerHandle]:
        return [h for h in self.handles if not h.cancelled() and not h.fired]

    def advance(self, seconds: float) -> None:
        self.time.advance(seconds)
        for handle in sorted(self.pending, key=lambda h: h.when):
            if handle.when <= self.time():
                handle.fired = True
                handle.callback()


class FakeIdentity:
    """Identity gateway double that records calls and issues fresh tokens."""

    def __init__(
        self,
        time: ManualTime | None = None,
        *,
        lifetime: float = 3600,
        failure: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.time = time or ManualTime()
        self.lifetime = lifetime
        self.failure = failure
        self.gate = gate
        self.raw_response: str | None = None
        self.logout_failure: Exception | None = None
        self.logout_gate: asyncio.Event | None = None
        self.refresh_calls: list[Credential] = []
        self.logout_calls: list[Credential] = []
        self.issued: list[str] = []

    async def refresh(self, credential: Credential) -> str:
        self.refresh_calls.append(credential)
        if self.gate is not None:
            await self.gate.wait()
        if self.failure is not None:
            raise self.failure
        if self.raw_response is not None:
            return self.raw_response
        token = make_jwt(
            self.time() + self.lifetime,
            sub=credential.subject,
            iat=self.time(),
            jti=f"renewal-{len(self.refresh_calls)}",
        )
        self.issued.append(token)
        return token

    async def logout(self, credential: Credential) -> None:
        self.logout_calls.append(credential)
        if self.logout_gate is not None:
            await self.logout_gate.wait()
        if self.logout_failure is not None:
            raise self.logout_failure


class FailingBackend:
    """Credential backend whose medium is unavailable."""

    def __init__(self, *, stored: str | None = None, fail_reads: bool = False) -> None:
        self.stored = stored
        self.fail_reads = fail_reads
        self.write_attempts = 0
        self.erase_attempts = 0

    def read(self) -> str | None:
        if self.fail_reads:
            raise StorageError("storage offline")
        return self.stored

    def write(self, raw: str) -> None:
        self.write_attempts += 1
        raise StorageError("storage offline")

    def erase(self) -> None:
        self.erase_attempts += 1
        raise StorageError("storage offline")


async def settle(rounds: int = 5) -> None:
    """Let scheduled tasks run up to their next suspension point."""

    for _ in range(rounds):
        await asyncio.sleep(0)


__all__ = [
    "API_BASE",
    "BASE_TIME",
    "FailingBackend",
    "FakeIdentity",
    "IDENTITY_BASE",
    "ManualScheduler",
    "ManualTime",
    "make_clock",
    "make_credential",
    "make_jwt",
    "make_settings",
    "settle",
]
