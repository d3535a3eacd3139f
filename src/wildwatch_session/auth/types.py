"""Credential type definitions."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field, field_validator


@dataclass(frozen=True, slots=True)
class Credential:
    """A decoded bearer credential.

    Instances are immutable; renewal always produces a new ``Credential``.
    """

    token: str = field(repr=False)
    """The opaque signed token string."""

    expires_at: float
    """Absolute expiry in Unix time, taken from the ``exp`` claim."""

    subject: str | None = None
    """The ``sub`` claim. Not interpreted by the session manager."""

    issued_at: float | None = None

    def seconds_remaining(self, now: float) -> float:
        return self.expires_at - now

    def authorization_header(self) -> str:
        return f"Bearer {self.token}"


class CredentialClaims(BaseModel):
    """Claims read from a credential payload; anything else is ignored."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    exp: float = Field(gt=0)
    sub: str | None = None
    iat: float | None = None

    @field_validator("exp")
    @classmethod
    def _finite_expiry(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("exp must be finite")
        return value


class RefreshResponse(BaseModel):
    """Body returned by the identity provider's refresh endpoint."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    token: str = Field(min_length=1)
    message: str | None = None


__all__ = ["Credential", "CredentialClaims", "RefreshResponse"]
