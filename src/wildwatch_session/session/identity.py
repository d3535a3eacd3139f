from __future__ import annotations

from typing import Protocol

import httpx
from pydantic import ValidationError

from wildwatch_session.auth.types import Credential, RefreshResponse
from wildwatch_session.config.settings import DEFAULT_REQUEST_TIMEOUT
from wildwatch_session.errors import RenewalNetworkError, RenewalRejected
from wildwatch_session.utils import get_logger


logger = get_logger(__name__)

REFRESH_PATH = "/auth/refresh"
LOGOUT_PATH = "/auth/logout"
USER_AGENT = "WildWatch-Session"


class IdentityGateway(Protocol):
    """The two identity-provider calls the session manager depends on."""

    async def refresh(self, credential: Credential) -> str: ...

    async def logout(self, credential: Credential) -> None: ...


class IdentityClient:
    """httpx client for the identity provider's refresh and logout endpoints."""

    def __init__(
        self,
        identity_base: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self._base = identity_base.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
        )

    @property
    def refresh_url(self) -> str:
        return f"{self._base}{REFRESH_PATH}"

    @property
    def logout_url(self) -> str:
        return f"{self._base}{LOGOUT_PATH}"

    async def refresh(self, credential: Credential) -> str:
        """Trade ``credential`` for a new raw token.

        Raises:
            RenewalNetworkError: The exchange failed at the transport level.
            RenewalRejected: Non-2xx status or a body without a ``token``.
        """

        try:
            response = await self._client.post(
                self.refresh_url,
                headers={"Authorization": credential.authorization_header()},
            )
        except httpx.RequestError as exc:
            raise RenewalNetworkError(
                f"Network error contacting identity provider: {type(exc).__name__}",
                inner_error=exc,
            ) from exc

        if not response.is_success:
            logger.warning(
                "Identity provider rejected renewal",
                status=response.status_code,
            )
            raise RenewalRejected(
                f"Credential renewal failed with status {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = RefreshResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise RenewalRejected(
                "Identity provider returned a malformed renewal response",
                status_code=response.status_code,
            ) from exc
        return body.token

    async def logout(self, credential: Credential) -> None:
        response = await self._client.post(
            self.logout_url,
            headers={"Authorization": credential.authorization_header()},
        )
        logger.debug("Server-side logout completed", status=response.status_code)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["IdentityClient", "IdentityGateway", "LOGOUT_PATH", "REFRESH_PATH"]
