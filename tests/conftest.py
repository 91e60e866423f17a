"""
Shared test fixtures for the YouMap MCP test suite.

Key fixtures:
- make_token: factory for signed JWTs, used as the access tokens the fake
  identity endpoint hands out
- fake_api: an in-memory YouMap platform (identity, refresh and business
  endpoints) served through httpx.MockTransport, recording every request
- clock: a controllable clock so token expiry can be tested without sleeping
- make_client: factory for YouMapClient instances wired to fake_api

Testing approach:
- test_tokens.py / test_gate.py: token store and authentication gate in isolation
- test_client.py: the request pipeline against fake_api (auth, expiry,
  401 retry cycle, concurrency, API-key mode, transport failures)
- test_tools.py: tool registry, argument validation and payload transforms
- test_audit.py: best-effort tool-call reporting
- test_server.py: HTTP front-ends through httpx.ASGITransport (no network)
"""

import asyncio
import datetime
import itertools
import json
from typing import Any

import httpx
import jwt
import pytest

from youmap_mcp.authenticator import AUTH_PATH, REFRESH_PATH
from youmap_mcp.client import YouMapClient
from youmap_mcp.tokens import Credentials

BASE_URL = "https://api.youmap.test"
TEST_SECRET = "test-signing-secret"
CLIENT_ID = "client-1"
CLIENT_SECRET = "secret-1"


# ---------------------------------------------------------------------------
# Token factory fixture
# ---------------------------------------------------------------------------
@pytest.fixture
def make_token():
    """
    Factory fixture to generate JWT tokens for testing.

    Every call returns a distinct token (a unique "jti" claim is added), so
    tests can tell an original token from its refreshed replacement.
    """
    counter = itertools.count(1)

    def _make_token(
        sub: str = CLIENT_ID,
        secret: str = TEST_SECRET,
        exp_hours: float = 1.0,
        extra_claims: dict | None = None,
    ) -> str:
        now = datetime.datetime.now(datetime.timezone.utc)
        payload: dict = {
            "sub": sub,
            "jti": str(next(counter)),
            "iat": now,
            "exp": now + datetime.timedelta(hours=exp_hours),
        }
        if extra_claims:
            payload.update(extra_claims)
        return jwt.encode(payload, secret, algorithm="HS256")

    return _make_token


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------
class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


# ---------------------------------------------------------------------------
# Fake YouMap platform
# ---------------------------------------------------------------------------
class FakeYouMapAPI:
    """
    In-memory stand-in for the YouMap platform.

    - POST /api/v1/auth issues a new token pair (unless auth_failures has
      statuses queued); if `auth_release` is set, it waits for that event first
    - POST /api/v1/auth/refreshAccessToken issues a new pair for a known
      refresh token (unless refresh_failures has statuses queued)
    - Business calls return responses registered with on(); otherwise they
      answer 200 when the bearer token is known and not revoked, 401 if not
    """

    def __init__(self, make_token, expires_in: int = 3600):
        self._make_token = make_token
        self.expires_in = expires_in
        self.requests: list[httpx.Request] = []
        self.access_tokens: list[str] = []
        self.refresh_tokens: set[str] = set()
        self.revoked: set[str] = set()
        self.auth_failures: list[int] = []
        self.refresh_failures: list[int] = []
        self.auth_release: asyncio.Event | None = None
        self._responses: dict[tuple[str, str], list[tuple[int, Any]]] = {}

    def on(self, method: str, path: str, status: int = 200, json: Any = None) -> None:
        """Queue a response. The last queued response keeps being returned."""
        self._responses.setdefault((method, path), []).append((status, json))

    def calls(self, path: str, method: str | None = None) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.url.path == path and (method is None or r.method == method)
        ]

    def count(self, path: str, method: str | None = None) -> int:
        return len(self.calls(path, method))

    @property
    def sequence(self) -> list[str]:
        """Compact "METHOD /path" log of every request in order."""
        return [f"{r.method} {r.url.path}" for r in self.requests]

    @property
    def latest_token(self) -> str:
        return self.access_tokens[-1]

    def revoke_all(self) -> None:
        self.revoked.update(self.access_tokens)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        # Yield to the event loop like a real network round-trip would.
        await asyncio.sleep(0)
        path = request.url.path

        if path == AUTH_PATH:
            if self.auth_release is not None:
                await self.auth_release.wait()
            if self.auth_failures:
                return httpx.Response(self.auth_failures.pop(0), json={"message": "Invalid credentials"})
            body = json.loads(request.content)
            return self._issue(sub=body["clientId"])

        if path == REFRESH_PATH:
            if self.refresh_failures:
                return httpx.Response(self.refresh_failures.pop(0), json={"message": "Invalid refresh token"})
            body = json.loads(request.content)
            if body["refreshToken"] not in self.refresh_tokens:
                return httpx.Response(401, json={"message": "Unknown refresh token"})
            return self._issue()

        queued = self._responses.get((request.method, path))
        if queued:
            status, payload = queued.pop(0) if len(queued) > 1 else queued[0]
            return httpx.Response(status, json=payload)

        if request.headers.get("x-api-key"):
            return httpx.Response(200, json={"path": path, "apiKey": request.headers["x-api-key"]})

        token = request.headers.get("authorization", "").removeprefix("Bearer ")
        if token not in self.access_tokens or token in self.revoked:
            return httpx.Response(401, json={"message": "Unauthorized"})
        return httpx.Response(200, json={"path": path, "method": request.method, "token": token})

    def _issue(self, sub: str = CLIENT_ID) -> httpx.Response:
        access = self._make_token(sub=sub)
        refresh = f"refresh-{len(self.access_tokens) + 1}"
        self.access_tokens.append(access)
        self.refresh_tokens.add(refresh)
        return httpx.Response(
            200,
            json={"token": access, "refreshToken": refresh, "expiresIn": str(self.expires_in)},
        )


@pytest.fixture
def fake_api(make_token):
    return FakeYouMapAPI(make_token)


@pytest.fixture
async def make_client(fake_api, clock):
    """
    Factory fixture for clients talking to fake_api.

    Usage in tests:
        async def test_something(make_client):
            client = make_client()                     # OAuth mode
            client = make_client(api_key="k", client_id=None)  # API-key mode
    """
    clients: list[YouMapClient] = []

    def _make_client(
        client_id: str | None = CLIENT_ID,
        client_secret: str | None = CLIENT_SECRET,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> YouMapClient:
        client = YouMapClient(
            BASE_URL,
            Credentials(client_id=client_id, client_secret=client_secret),
            api_key=api_key,
            transport=transport or fake_api.transport(),
            clock=clock,
        )
        clients.append(client)
        return client

    yield _make_client

    for client in clients:
        await client.aclose()
