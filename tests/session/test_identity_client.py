from __future__ import annotations

import httpx
import pytest
import respx

from wildwatch_session.errors import RenewalNetworkError, RenewalRejected
from wildwatch_session.session import IdentityClient

from tests.factories import BASE_TIME, IDENTITY_BASE, make_credential, make_jwt


REFRESH_URL = f"{IDENTITY_BASE}/auth/refresh"
LOGOUT_URL = f"{IDENTITY_BASE}/auth/logout"


@pytest.mark.asyncio
async def test_refresh_posts_current_credential_and_returns_new_token(
    respx_mock: respx.Router,
) -> None:
    credential = make_credential()
    issued = make_jwt(BASE_TIME + 7200)
    route = respx_mock.post(REFRESH_URL).mock(
        return_value=httpx.Response(
            200, json={"token": issued, "message": "Token refreshed successfully"}
        )
    )
    client = IdentityClient(f"{IDENTITY_BASE}/")
    try:
        assert await client.refresh(credential) == issued
    finally:
        await client.aclose()

    request = route.calls.last.request
    assert request.headers["Authorization"] == f"Bearer {credential.token}"
    assert request.headers["User-Agent"] == "WildWatch-Session"


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [400, 401, 403, 500, 503])
async def test_refresh_rejection_carries_status(
    respx_mock: respx.Router,
    status: int,
) -> None:
    respx_mock.post(REFRESH_URL).mock(
        return_value=httpx.Response(status, json={"message": "Invalid token"})
    )
    client = IdentityClient(IDENTITY_BASE)
    try:
        with pytest.raises(RenewalRejected) as excinfo:
            await client.refresh(make_credential())
    finally:
        await client.aclose()

    assert excinfo.value.status_code == status
    assert excinfo.value.is_terminal


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"message": "ok"},
        {"token": ""},
        {"token": None},
    ],
)
async def test_refresh_rejects_body_without_token(
    respx_mock: respx.Router,
    body: dict[str, object],
) -> None:
    respx_mock.post(REFRESH_URL).mock(return_value=httpx.Response(200, json=body))
    client = IdentityClient(IDENTITY_BASE)
    try:
        with pytest.raises(RenewalRejected):
            await client.refresh(make_credential())
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_refresh_rejects_non_json_body(respx_mock: respx.Router) -> None:
    respx_mock.post(REFRESH_URL).mock(
        return_value=httpx.Response(200, text="<html>maintenance</html>")
    )
    client = IdentityClient(IDENTITY_BASE)
    try:
        with pytest.raises(RenewalRejected):
            await client.refresh(make_credential())
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_refresh_network_failure(respx_mock: respx.Router) -> None:
    respx_mock.post(REFRESH_URL).mock(side_effect=httpx.ConnectError("unreachable"))
    client = IdentityClient(IDENTITY_BASE)
    try:
        with pytest.raises(RenewalNetworkError) as excinfo:
            await client.refresh(make_credential())
    finally:
        await client.aclose()

    assert isinstance(excinfo.value.inner_error, httpx.ConnectError)


@pytest.mark.asyncio
async def test_logout_posts_with_bearer(respx_mock: respx.Router) -> None:
    credential = make_credential()
    route = respx_mock.post(LOGOUT_URL).mock(return_value=httpx.Response(200))
    client = IdentityClient(IDENTITY_BASE)
    try:
        await client.logout(credential)
    finally:
        await client.aclose()

    assert route.call_count == 1
    assert route.calls.last.request.headers["Authorization"] == f"Bearer {credential.token}"


@pytest.mark.asyncio
async def test_injected_client_is_left_open() -> None:
    http = httpx.AsyncClient()
    client = IdentityClient(IDENTITY_BASE, client=http)

    await client.aclose()

    assert not http.is_closed
    assert client.refresh_url == f"{IDENTITY_BASE}/auth/refresh"
    await http.aclose()
