from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

import httpx

from wildwatch_session.auth.types import Credential
from wildwatch_session.config.settings import DEFAULT_REQUEST_TIMEOUT
from wildwatch_session.errors import (
    MissingCredentialError,
    RequestRejectedAfterRetry,
    SessionError,
    TransportError,
)
from wildwatch_session.session.coordinator import RenewalCoordinator
from wildwatch_session.session.terminator import SessionTerminator, TerminationReason
from wildwatch_session.utils import get_logger


logger = get_logger(__name__)

UNAUTHORIZED = 401


@dataclass(slots=True)
class RequestSpec:
    method: str
    path: str
    json: Any = None
    content: bytes | str | None = None
    data: Mapping[str, Any] | None = None
    files: Mapping[str, Any] | None = None
    params: Mapping[str, Any] | None = None
    headers: Mapping[str, str] = field(default_factory=dict)
    skip_auth: bool = False


@dataclass(slots=True)
class RequestTelemetryEvent:
    method: str
    url: str
    status_code: int | None
    duration_ms: float
    authenticated: bool
    renewed: bool
    retried: bool
    success: bool


class RequestPipeline:
    """Send domain calls with the session credential attached.

    A 401 on an authenticated call triggers one renewal and one retry. A
    second 401, or a failed renewal, terminates the session. Every other
    response is returned untouched; business errors are the caller's concern.
    """

    def __init__(
        self,
        coordinator: RenewalCoordinator,
        terminator: SessionTerminator,
        *,
        base_url: str = "",
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        telemetry_callback: Callable[[RequestTelemetryEvent], None] | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._terminator = terminator
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._telemetry_callback = telemetry_callback

    async def execute(self, spec: RequestSpec) -> httpx.Response:
        start = time.perf_counter()
        url = self._resolve_url(spec.path)
        credential = None if spec.skip_auth else await self._obtain_credential()

        response = await self._send(spec, url, credential)
        if response.status_code != UNAUTHORIZED or credential is None:
            self._publish(spec, url, response, start, credential, renewed=False, retried=False)
            return response

        await response.aclose()
        logger.info(
            "Request rejected; renewing credential",
            method=spec.method.upper(),
            url=url,
        )
        try:
            renewed = await self._coordinator.force_renew(rejected=credential)
        except SessionError as exc:
            self._publish(spec, url, response, start, credential, renewed=False, retried=False)
            logger.warning(
                "Renewal after rejection failed; ending session",
                category=exc.category.value,
                error=str(exc),
            )
            self._end_session(TerminationReason.RENEWAL_FAILED, credential)
            raise

        retry = await self._send(spec, url, renewed)
        self._publish(spec, url, retry, start, renewed, renewed=True, retried=True)
        if retry.status_code != UNAUTHORIZED:
            return retry

        await retry.aclose()
        logger.warning(
            "Request still rejected after renewal; ending session",
            method=spec.method.upper(),
            url=url,
        )
        self._end_session(TerminationReason.REJECTED_AFTER_RETRY, renewed)
        raise RequestRejectedAfterRetry(
            f"{spec.method.upper()} {url} rejected after credential renewal"
        )

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.execute(RequestSpec(method="GET", path=path, **kwargs))

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.execute(RequestSpec(method="POST", path=path, **kwargs))

    async def put(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.execute(RequestSpec(method="PUT", path=path, **kwargs))

    async def patch(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.execute(RequestSpec(method="PATCH", path=path, **kwargs))

    async def delete(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.execute(RequestSpec(method="DELETE", path=path, **kwargs))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # Internal --------------------------------------------------------

    async def _obtain_credential(self) -> Credential | None:
        try:
            return await self._coordinator.ensure_valid()
        except MissingCredentialError:
            return None
        except SessionError as exc:
            # The coordinator has already ended the session; the server decides.
            logger.warning(
                "No valid credential; sending request unauthenticated",
                error=str(exc),
            )
            return None

    def _end_session(self, reason: TerminationReason, sent: Credential) -> None:
        current = self._coordinator.current()
        if current is not None and current.token != sent.token:
            # A sign-in replaced the session this request was made under.
            logger.info(
                "Session replaced during request; not terminating",
                reason=reason.value,
                subject=current.subject,
            )
            return
        self._terminator.terminate(reason, credential=sent)

    async def _send(
        self,
        spec: RequestSpec,
        url: str,
        credential: Credential | None,
    ) -> httpx.Response:
        headers = dict(spec.headers)
        if credential is not None:
            headers["Authorization"] = credential.authorization_header()
        try:
            return await self._client.request(
                spec.method.upper(),
                url,
                json=spec.json,
                content=spec.content,
                data=spec.data,
                files=spec.files,
                params=spec.params,
                headers=headers,
            )
        except httpx.RequestError as exc:
            raise TransportError(
                f"Network error calling {spec.method.upper()} {url}: {type(exc).__name__}",
                inner_error=exc,
            ) from exc

    def _resolve_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")) or not self._base_url:
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    def _publish(
        self,
        spec: RequestSpec,
        url: str,
        response: httpx.Response,
        start: float,
        credential: Credential | None,
        *,
        renewed: bool,
        retried: bool,
    ) -> None:
        if not self._telemetry_callback:
            return
        event = RequestTelemetryEvent(
            method=spec.method.upper(),
            url=url,
            status_code=response.status_code,
            duration_ms=(time.perf_counter() - start) * 1000,
            authenticated=credential is not None,
            renewed=renewed,
            retried=retried,
            success=response.is_success,
        )
        try:
            self._telemetry_callback(event)
        except Exception:  # pragma: no cover - telemetry shouldn't break requests
            logger.warning("Telemetry callback raised an exception", exc_info=True)


__all__ = ["RequestPipeline", "RequestSpec", "RequestTelemetryEvent"]
