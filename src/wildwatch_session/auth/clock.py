from __future__ import annotations

import base64
import json
import time
from typing import Callable

from wildwatch_session.auth.types import Credential, CredentialClaims
from wildwatch_session.config.settings import DEFAULT_RENEWAL_LEAD_SECONDS
from wildwatch_session.errors import DecodeError
from wildwatch_session.utils import get_logger


logger = get_logger(__name__)


class CredentialClock:
    """Reads expiry from a credential's own claims and compares it to now.

    Decoding never verifies the signature; the server remains authoritative.
    The clock only needs ``exp`` to decide when to renew.
    """

    def __init__(
        self,
        *,
        lead_time: float = DEFAULT_RENEWAL_LEAD_SECONDS,
        now: Callable[[], float] = time.time,
    ) -> None:
        self._lead_time = lead_time
        self._now = now

    @property
    def lead_time(self) -> float:
        return self._lead_time

    def now(self) -> float:
        return self._now()

    def decode(self, raw: object) -> Credential:
        """Decode ``raw`` into a :class:`Credential` or raise :class:`DecodeError`."""

        if not isinstance(raw, str) or not raw.strip():
            raise DecodeError("Credential is empty or not a string")
        token = raw.strip()
        parts = token.split(".")
        if len(parts) != 3 or not parts[1]:
            raise DecodeError("Credential is not a three-part signed token")
        try:
            padding = "=" * (-len(parts[1]) % 4)
            payload = base64.urlsafe_b64decode(parts[1] + padding)
            claims = json.loads(payload)
            if not isinstance(claims, dict):
                raise ValueError("claims payload is not an object")
            parsed = CredentialClaims.model_validate(claims)
        except ValueError as exc:
            # binascii, unicode, JSON and pydantic errors are all ValueErrors.
            raise DecodeError(
                f"Credential claims could not be decoded: {type(exc).__name__}",
                inner_error=exc,
            ) from exc
        return Credential(
            token=token,
            expires_at=parsed.exp,
            subject=parsed.sub,
            issued_at=parsed.iat,
        )

    def try_decode(self, raw: object) -> Credential | None:
        try:
            return self.decode(raw)
        except DecodeError as exc:
            logger.warning("Discarding undecodable credential", reason=str(exc))
            return None

    def is_expired(self, credential: Credential) -> bool:
        return credential.expires_at <= self._now()

    def is_expiring_soon(
        self, credential: Credential, lead_time: float | None = None
    ) -> bool:
        lead = self._lead_time if lead_time is None else lead_time
        return credential.seconds_remaining(self._now()) < lead

    def renewal_delay(self, credential: Credential) -> float:
        """Seconds until the credential enters its renewal window (may be negative)."""
        return credential.expires_at - self._lead_time - self._now()


__all__ = ["CredentialClock"]
