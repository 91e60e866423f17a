"""
Authenticated request pipeline for the YouMap platform API.

Every tool reaches the platform through a YouMapClient. The client picks
one of two auth modes when it is constructed and never changes it:

- OAuth (client credentials): before each call the AuthenticationGate makes
  sure an unexpired TokenPair is held, and the call carries
  "Authorization: Bearer <token>". A 401 answer triggers one retry cycle:

      refresh the token ──ok──> retry the call once
            │
          failed
            │
      discard the pair, authenticate from scratch, retry the call once

  Whatever the retried call returns is final; there is no third attempt.

- API key: the key is sent in the X-API-Key header and the identity
  endpoints are never contacted. Errors propagate without retries.

Non-401 failures are raised right away as BusinessRequestError (with the
platform's status and message) or TransportNetworkError. This is the only
place in the project with a retry policy; tool handlers never retry.

One client per credential set. Clients never share token state, so serving
several tenants at once needs no cross-client locking.
"""

import logging
import time
from typing import Any, Callable

import httpx

from youmap_mcp.authenticator import Authenticator
from youmap_mcp.errors import AuthRequestError, BusinessRequestError, TransportNetworkError
from youmap_mcp.gate import AuthenticationGate
from youmap_mcp.tokens import DEFAULT_EXPIRY_MARGIN, Credentials, TokenPair, TokenStore

API_KEY_HEADER = "X-API-Key"

OAUTH = "oauth"
API_KEY = "api_key"

logger = logging.getLogger(__name__)


class YouMapClient:
    def __init__(
        self,
        base_url: str,
        credentials: Credentials | None = None,
        *,
        api_key: str | None = None,
        auth_timeout: float = 10.0,
        request_timeout: float = 30.0,
        expiry_margin: float = DEFAULT_EXPIRY_MARGIN,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.credentials = credentials or Credentials()
        self.api_key = api_key
        # Complete OAuth credentials take precedence over an API key.
        self.auth_mode = API_KEY if api_key and not self.credentials.complete else OAUTH

        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers={"Content-Type": "application/json"},
            timeout=request_timeout,
            transport=transport,
        )
        self.store = TokenStore(clock=clock, expiry_margin=expiry_margin)
        self.authenticator = Authenticator(self._http, clock=clock, timeout=auth_timeout)
        self.gate = AuthenticationGate(self.store, self.authenticator, self.credentials)

    @classmethod
    def from_settings(
        cls,
        settings,
        credentials: Credentials | None = None,
        *,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "YouMapClient":
        """
        Build a client using the timeouts and base URL from `settings`.

        Without explicit `credentials`/`api_key` the single-tenant values from
        the environment are used.
        """
        if credentials is None and api_key is None:
            credentials = settings.credentials()
            api_key = settings.api_key
        return cls(
            settings.base_url,
            credentials,
            api_key=api_key,
            auth_timeout=settings.auth_timeout,
            request_timeout=settings.request_timeout,
            expiry_margin=settings.expiry_margin,
            transport=transport,
        )

    async def __aenter__(self) -> "YouMapClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ----- Public HTTP verbs -----

    async def get(self, path: str, params: dict | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, data: Any = None) -> Any:
        return await self.request("POST", path, json=data)

    async def put(self, path: str, data: Any = None) -> Any:
        return await self.request("PUT", path, json=data)

    async def patch(self, path: str, data: Any = None) -> Any:
        return await self.request("PATCH", path, json=data)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict | None = None,
        json: Any = None,
    ) -> Any:
        """
        Issue one business call and return the decoded JSON body.

        Raises:
            AuthConfigError: OAuth mode without client credentials
            AuthRequestError: The identity endpoint could not issue a token
            BusinessRequestError: The platform answered with a non-2xx status
            TransportNetworkError: No HTTP answer (timeout, DNS, refused)
        """
        if self.auth_mode == API_KEY:
            response = await self._send(method, path, params, json, {API_KEY_HEADER: self.api_key})
            return self._decode(response)

        await self.gate.ensure_authenticated()
        pair = self._held_pair()
        response = await self._send(method, path, params, json, _bearer(pair))

        if response.status_code == 401 and self.store.current is not None:
            response = await self._retry_unauthorized(method, path, params, json, pair)

        return self._decode(response)

    # ----- Internals -----

    async def _retry_unauthorized(
        self,
        method: str,
        path: str,
        params: dict | None,
        json: Any,
        rejected: TokenPair,
    ) -> httpx.Response:
        logger.info(
            "Business call unauthorized, refreshing token",
            extra={"event_data": {"method": method, "path": path}},
        )
        try:
            await self.gate.refresh(rejected)
        except AuthRequestError:
            logger.warning("Refresh rejected, re-authenticating from scratch")
            self.store.discard(rejected)
        await self.gate.ensure_authenticated()

        return await self._send(method, path, params, json, _bearer(self._held_pair()))

    def _held_pair(self) -> TokenPair:
        pair = self.store.current
        if pair is None:
            raise AuthRequestError("No access token available after authentication")
        return pair

    async def _send(
        self,
        method: str,
        path: str,
        params: dict | None,
        json: Any,
        headers: dict[str, str],
    ) -> httpx.Response:
        try:
            response = await self._http.request(
                method, path, params=params, json=json, headers=headers
            )
        except httpx.TimeoutException as e:
            raise TransportNetworkError(f"Request to {path} timed out", "timeout") from e
        except httpx.ConnectError as e:
            raise TransportNetworkError(f"Could not connect to the YouMap API: {e}", "connect") from e
        except httpx.HTTPError as e:
            raise TransportNetworkError(f"Network error calling {path}: {e}", "network") from e

        logger.debug(
            "YouMap API call",
            extra={
                "event_data": {
                    "method": method,
                    "path": path,
                    "status": response.status_code,
                }
            },
        )
        return response

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        payload = _body(response)
        if response.is_success:
            return payload

        message = response.reason_phrase or "Request failed"
        if isinstance(payload, dict) and isinstance(payload.get("message"), str):
            message = payload["message"]
        raise BusinessRequestError(message, response.status_code, payload)


def _bearer(pair: TokenPair) -> dict[str, str]:
    return {"Authorization": f"Bearer {pair.access_token}"}


def _body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
