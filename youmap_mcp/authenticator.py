"""
Network exchanges that produce a TokenPair.

Two calls against the identity endpoint:

    POST /api/v1/auth                      {clientId, clientSecret}
    POST /api/v1/auth/refreshAccessToken   {refreshToken}

Both answer with {token, refreshToken, expiresIn}. The Authenticator only
computes new pairs; installing them in the TokenStore is the caller's job.
"""

import logging
from typing import Any, Callable

import httpx

from youmap_mcp.errors import AuthConfigError, AuthRequestError
from youmap_mcp.tokens import Credentials, TokenPair

AUTH_PATH = "/api/v1/auth"
REFRESH_PATH = "/api/v1/auth/refreshAccessToken"

logger = logging.getLogger(__name__)


class Authenticator:
    def __init__(
        self,
        http: httpx.AsyncClient,
        clock: Callable[[], float],
        timeout: float = 10.0,
    ) -> None:
        self._http = http
        self._clock = clock
        self._timeout = timeout

    async def authenticate(self, credentials: Credentials) -> TokenPair:
        """
        Exchange client credentials for a fresh TokenPair.

        Raises:
            AuthConfigError: If client ID or secret is missing (no call is made)
            AuthRequestError: If the identity endpoint rejects the call or
                              cannot be reached
        """
        if not credentials.complete:
            raise AuthConfigError(
                "YOUMAP_CLIENT_ID and YOUMAP_CLIENT_SECRET are required for authentication"
            )
        body = await self._exchange(
            AUTH_PATH,
            {"clientId": credentials.client_id, "clientSecret": credentials.client_secret},
            "Authentication",
        )
        return self._parse(body)

    async def refresh(self, pair: TokenPair) -> TokenPair:
        """
        Trade the refresh token of `pair` for a new TokenPair.

        A rejected refresh token is not retried here; the pipeline falls back
        to a full authenticate().
        """
        body = await self._exchange(
            REFRESH_PATH, {"refreshToken": pair.refresh_token}, "Token refresh"
        )
        return self._parse(body)

    async def _exchange(self, path: str, payload: dict, label: str) -> Any:
        try:
            response = await self._http.post(path, json=payload, timeout=self._timeout)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise AuthRequestError(
                f"{label} failed with status {status}", status_code=status
            ) from e
        except httpx.TimeoutException as e:
            raise AuthRequestError(f"{label} timed out") from e
        except httpx.HTTPError as e:
            raise AuthRequestError(f"{label} request failed: {e}") from e
        except ValueError as e:
            # Body was not JSON
            raise AuthRequestError(f"{label} returned an unreadable response") from e

    def _parse(self, body: Any) -> TokenPair:
        try:
            return TokenPair(
                access_token=body["token"],
                refresh_token=body["refreshToken"],
                expires_in=int(body["expiresIn"]),
                obtained_at=self._clock(),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise AuthRequestError(f"Identity endpoint returned a malformed token: {e}") from e
