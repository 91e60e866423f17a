"""
Tests for the authenticated request pipeline (youmap_mcp/client.py).

Every test runs against the in-memory platform from conftest.py, so the
assertions can look at the exact sequence of identity, refresh and business
requests the client made.
"""

import asyncio
import json

import httpx
import pytest

from conftest import BASE_URL, CLIENT_ID, CLIENT_SECRET
from youmap_mcp.authenticator import AUTH_PATH, REFRESH_PATH
from youmap_mcp.client import API_KEY, OAUTH, YouMapClient
from youmap_mcp.config import Settings
from youmap_mcp.errors import (
    AuthConfigError,
    AuthRequestError,
    BusinessRequestError,
    TransportNetworkError,
)

MAPS = "/api/v1/map"


async def wait_until(predicate) -> None:
    for _ in range(100):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


def failing_transport(fake_api, error_type: type[httpx.HTTPError]) -> httpx.MockTransport:
    """Identity calls reach fake_api; business calls raise `error_type`."""

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path in (AUTH_PATH, REFRESH_PATH):
            return await fake_api(request)
        raise error_type("simulated failure", request=request)

    return httpx.MockTransport(handler)


# ---------------------------------------------------------------------------
# Authentication before the first call
# ---------------------------------------------------------------------------


class TestAuthentication:
    async def test_first_call_authenticates_then_sends_the_bearer_token(self, make_client, fake_api):
        client = make_client()

        result = await client.get(MAPS)

        assert fake_api.sequence == [f"POST {AUTH_PATH}", f"GET {MAPS}"]
        assert result["token"] == fake_api.latest_token
        auth_body = json.loads(fake_api.calls(AUTH_PATH)[0].content)
        assert auth_body == {"clientId": CLIENT_ID, "clientSecret": CLIENT_SECRET}

    async def test_fresh_token_is_reused(self, make_client, fake_api):
        client = make_client()

        await client.get(MAPS)
        await client.get(MAPS)
        await client.post(MAPS, {"name": "Trails"})

        assert fake_api.count(AUTH_PATH) == 1
        assert fake_api.count(MAPS) == 3

    async def test_token_inside_the_margin_is_replaced_before_the_call(self, make_client, fake_api, clock):
        client = make_client()
        await client.get(MAPS)
        first_token = fake_api.latest_token

        clock.advance(3600 - 300)
        result = await client.get(MAPS)

        assert fake_api.sequence == [
            f"POST {AUTH_PATH}", f"GET {MAPS}", f"POST {AUTH_PATH}", f"GET {MAPS}",
        ]
        assert result["token"] != first_token
        assert fake_api.count(REFRESH_PATH) == 0

    async def test_token_just_outside_the_margin_is_still_used(self, make_client, fake_api, clock):
        client = make_client()
        await client.get(MAPS)

        clock.advance(3600 - 301)
        await client.get(MAPS)

        assert fake_api.count(AUTH_PATH) == 1

    async def test_expires_in_string_is_parsed(self, make_client, clock):
        client = make_client()

        await client.get(MAPS)

        assert client.store.current.expires_in == 3600
        assert client.store.current.obtained_at == clock.now

    async def test_missing_credentials_raise_without_any_request(self, make_client, fake_api):
        client = make_client(client_id=None, client_secret=None)

        with pytest.raises(AuthConfigError):
            await client.get(MAPS)

        assert fake_api.requests == []

    async def test_rejected_credentials_raise_auth_request_error(self, make_client, fake_api):
        fake_api.auth_failures.append(401)
        client = make_client()

        with pytest.raises(AuthRequestError) as exc_info:
            await client.get(MAPS)

        assert exc_info.value.status_code == 401
        assert fake_api.count(MAPS) == 0
        assert client.gate.in_progress is False

    async def test_identity_endpoint_server_error(self, make_client, fake_api):
        fake_api.auth_failures.append(500)
        client = make_client()

        with pytest.raises(AuthRequestError) as exc_info:
            await client.get(MAPS)

        assert exc_info.value.status_code == 500

    async def test_malformed_token_response(self, make_client, fake_api):
        async def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"token": "only-half"})

        client = make_client(transport=httpx.MockTransport(handler))

        with pytest.raises(AuthRequestError):
            await client.get(MAPS)
        assert client.store.current is None


# ---------------------------------------------------------------------------
# 401 retry cycle
# ---------------------------------------------------------------------------


class TestUnauthorizedRetry:
    async def test_401_refreshes_and_retries_once(self, make_client, fake_api):
        client = make_client()
        await client.get(MAPS)
        fake_api.revoke_all()

        result = await client.get(MAPS)

        assert fake_api.sequence == [
            f"POST {AUTH_PATH}",
            f"GET {MAPS}",
            f"GET {MAPS}",
            f"POST {REFRESH_PATH}",
            f"GET {MAPS}",
        ]
        assert result["token"] == fake_api.latest_token
        refresh_body = json.loads(fake_api.calls(REFRESH_PATH)[0].content)
        assert refresh_body == {"refreshToken": "refresh-1"}

    async def test_failed_refresh_falls_back_to_full_authentication(self, make_client, fake_api):
        client = make_client()
        await client.get(MAPS)
        fake_api.revoke_all()
        fake_api.refresh_failures.append(401)

        result = await client.get(MAPS)

        assert fake_api.sequence == [
            f"POST {AUTH_PATH}",
            f"GET {MAPS}",
            f"GET {MAPS}",
            f"POST {REFRESH_PATH}",
            f"POST {AUTH_PATH}",
            f"GET {MAPS}",
        ]
        assert result["token"] == fake_api.latest_token

    async def test_retry_result_is_final(self, make_client, fake_api):
        fake_api.on("GET", MAPS, 401, {"message": "Unauthorized"})
        client = make_client()

        with pytest.raises(BusinessRequestError) as exc_info:
            await client.get(MAPS)

        assert exc_info.value.status_code == 401
        assert fake_api.count(MAPS) == 2
        assert fake_api.count(REFRESH_PATH) == 1

    async def test_retry_succeeds_after_one_unauthorized_answer(self, make_client, fake_api):
        fake_api.on("GET", MAPS, 401, {"message": "Unauthorized"})
        fake_api.on("GET", MAPS, 200, {"maps": [], "count": 0})
        client = make_client()

        result = await client.get(MAPS)

        assert result == {"maps": [], "count": 0}
        assert fake_api.count(MAPS) == 2

    async def test_other_statuses_are_not_retried(self, make_client, fake_api):
        fake_api.on("GET", f"{MAPS}/9", 404, {"message": "Map not found"})
        client = make_client()

        with pytest.raises(BusinessRequestError) as exc_info:
            await client.get(f"{MAPS}/9")

        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Map not found"
        assert exc_info.value.payload == {"message": "Map not found"}
        assert fake_api.count(f"{MAPS}/9") == 1
        assert fake_api.count(REFRESH_PATH) == 0

    async def test_failed_reauthentication_after_refresh_propagates(self, make_client, fake_api):
        client = make_client()
        await client.get(MAPS)
        fake_api.revoke_all()
        fake_api.refresh_failures.append(401)
        fake_api.auth_failures.append(401)

        with pytest.raises(AuthRequestError):
            await client.get(MAPS)

        assert client.store.current is None
        assert client.gate.in_progress is False


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestConcurrency:
    async def test_concurrent_first_calls_authenticate_once(self, make_client, fake_api):
        fake_api.auth_release = asyncio.Event()
        client = make_client()

        tasks = [asyncio.create_task(client.get(MAPS)) for _ in range(5)]
        await wait_until(lambda: fake_api.count(AUTH_PATH) == 1)
        fake_api.auth_release.set()
        results = await asyncio.gather(*tasks)

        assert fake_api.count(AUTH_PATH) == 1
        assert fake_api.count(MAPS) == 5
        assert {r["token"] for r in results} == {fake_api.latest_token}

    async def test_failed_authentication_is_reported_to_one_caller(self, make_client, fake_api):
        fake_api.auth_release = asyncio.Event()
        fake_api.auth_failures.append(500)
        client = make_client()

        tasks = [asyncio.create_task(client.get(MAPS)) for _ in range(3)]
        await wait_until(lambda: fake_api.count(AUTH_PATH) == 1)
        fake_api.auth_release.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], AuthRequestError)
        assert fake_api.count(AUTH_PATH) == 2
        assert fake_api.count(MAPS) == 2

    async def test_concurrent_401s_share_one_refresh(self, make_client, fake_api):
        client = make_client()
        await client.get(MAPS)
        fake_api.revoke_all()

        results = await asyncio.gather(*(client.get(MAPS) for _ in range(3)))

        assert fake_api.count(REFRESH_PATH) == 1
        assert fake_api.count(AUTH_PATH) == 1
        assert {r["token"] for r in results} == {fake_api.latest_token}

    async def test_failed_retry_cycle_authenticates_once_per_caller(self, make_client, fake_api):
        client = make_client()
        await client.get(MAPS)
        fake_api.revoke_all()
        fake_api.refresh_failures.append(401)
        fake_api.auth_failures.extend([500] * 4)

        results = await asyncio.gather(client.get(MAPS), client.get(MAPS), return_exceptions=True)

        assert all(isinstance(r, AuthRequestError) for r in results)
        assert fake_api.count(REFRESH_PATH) == 1
        # One warm-up authentication, then one attempt per failed caller.
        assert fake_api.count(AUTH_PATH) == 3

    async def test_clients_do_not_share_tokens(self, make_client, fake_api):
        first = make_client()
        second = make_client(client_id="client-2", client_secret="secret-2")

        a, b = await asyncio.gather(first.get(MAPS), second.get(MAPS))

        assert fake_api.count(AUTH_PATH) == 2
        assert a["token"] != b["token"]


# ---------------------------------------------------------------------------
# API-key mode
# ---------------------------------------------------------------------------


class TestApiKeyMode:
    async def test_api_key_header_and_no_identity_calls(self, make_client, fake_api):
        client = make_client(client_id=None, client_secret=None, api_key="static-key")

        result = await client.get(MAPS)

        assert client.auth_mode == API_KEY
        assert result == {"path": MAPS, "apiKey": "static-key"}
        assert fake_api.count(AUTH_PATH) == 0
        assert "authorization" not in fake_api.requests[0].headers

    async def test_401_is_not_retried(self, make_client, fake_api):
        fake_api.on("GET", MAPS, 401, {"message": "Invalid API key"})
        client = make_client(client_id=None, client_secret=None, api_key="bad-key")

        with pytest.raises(BusinessRequestError) as exc_info:
            await client.get(MAPS)

        assert exc_info.value.message == "Invalid API key"
        assert fake_api.sequence == [f"GET {MAPS}"]

    async def test_complete_credentials_take_precedence(self, make_client, fake_api):
        client = make_client(api_key="static-key")

        await client.get(MAPS)

        assert client.auth_mode == OAUTH
        assert fake_api.count(AUTH_PATH) == 1
        assert "x-api-key" not in fake_api.calls(MAPS)[0].headers


# ---------------------------------------------------------------------------
# Request and response handling
# ---------------------------------------------------------------------------


class TestRequests:
    async def test_query_params_and_json_body(self, make_client, fake_api):
        client = make_client()

        await client.get(MAPS, {"limit": 10, "offset": 20})
        await client.put("/api/v1/post-template/3/v/1", {"name": "Rate"})

        get_request = fake_api.calls(MAPS)[0]
        assert get_request.url.params["limit"] == "10"
        assert get_request.url.params["offset"] == "20"
        put_request = fake_api.calls("/api/v1/post-template/3/v/1")[0]
        assert put_request.method == "PUT"
        assert json.loads(put_request.content) == {"name": "Rate"}
        assert str(put_request.url).startswith(BASE_URL)

    async def test_empty_body_decodes_to_none(self, make_client, fake_api):
        fake_api.on("DELETE", f"{MAPS}/4", 204)
        client = make_client()

        assert await client.delete(f"{MAPS}/4") is None

    async def test_patch(self, make_client, fake_api):
        client = make_client()

        result = await client.patch(f"{MAPS}/4", {"name": "x"})

        assert result["method"] == "PATCH"

    async def test_error_without_message_uses_reason_phrase(self, make_client, fake_api):
        fake_api.on("GET", MAPS, 503, None)
        client = make_client()

        with pytest.raises(BusinessRequestError) as exc_info:
            await client.get(MAPS)

        assert exc_info.value.status_code == 503
        assert exc_info.value.message == "Service Unavailable"


class TestTransportFailures:
    @pytest.mark.parametrize(
        "error_type, kind",
        [
            (httpx.ConnectError, "connect"),
            (httpx.ReadTimeout, "timeout"),
            (httpx.RemoteProtocolError, "network"),
        ],
    )
    async def test_transport_errors_are_classified(self, make_client, fake_api, error_type, kind):
        client = make_client(transport=failing_transport(fake_api, error_type))

        with pytest.raises(TransportNetworkError) as exc_info:
            await client.get(MAPS)

        assert exc_info.value.kind == kind
        assert exc_info.value.status_code is None

    async def test_unreachable_identity_endpoint(self, make_client):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = make_client(transport=httpx.MockTransport(handler))

        with pytest.raises(AuthRequestError):
            await client.get(MAPS)


class TestFromSettings:
    async def test_uses_settings_credentials_and_base_url(self, fake_api):
        config = Settings(
            _env_file=None,
            base_url=BASE_URL,
            client_id=CLIENT_ID,
            client_secret=CLIENT_SECRET,
            api_key=None,
        )

        async with YouMapClient.from_settings(config, transport=fake_api.transport()) as client:
            assert client.auth_mode == OAUTH
            await client.get(MAPS)

        assert fake_api.sequence == [f"POST {AUTH_PATH}", f"GET {MAPS}"]

    async def test_explicit_api_key_overrides_settings(self, fake_api):
        config = Settings(_env_file=None, base_url=BASE_URL, client_id=None, client_secret=None)

        async with YouMapClient.from_settings(
            config, api_key="tenant-key", transport=fake_api.transport()
        ) as client:
            result = await client.get(MAPS)

        assert result["apiKey"] == "tenant-key"
