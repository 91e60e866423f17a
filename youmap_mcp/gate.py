"""
Authentication gate: one authentication or refresh in flight per client.

When N coroutines find the token store empty (or stale) at the same time,
the first one runs the identity exchange while the others await an
asyncio.Event that is set when it finishes. Waiters then look at the store
again: if the winner installed a pair they proceed with it, otherwise
(the winner failed) the next waiter starts its own attempt. The failure
itself is only raised to the coroutine that made the failing call.

The gate relies on the single-threaded event loop: checking and setting
`_in_flight` happens without an await in between, so no lock is needed.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from youmap_mcp.authenticator import Authenticator
from youmap_mcp.errors import AuthConfigError
from youmap_mcp.tokens import Credentials, TokenPair, TokenStore

T = TypeVar("T")

logger = logging.getLogger(__name__)


class AuthenticationGate:
    def __init__(
        self,
        store: TokenStore,
        authenticator: Authenticator,
        credentials: Credentials,
    ) -> None:
        self._store = store
        self._authenticator = authenticator
        self._credentials = credentials
        self._in_flight: asyncio.Event | None = None

    @property
    def in_progress(self) -> bool:
        return self._in_flight is not None

    async def ensure_authenticated(self) -> None:
        """
        Return once the store holds an unexpired TokenPair.

        Raises:
            AuthConfigError: If credentials are missing
            AuthRequestError: If this caller's identity exchange failed
        """
        while True:
            if self._in_flight is not None:
                await self._in_flight.wait()
                continue
            if not self._store.is_expired():
                return
            await self._exclusive(self._authenticate)
            return

    async def refresh(self, stale: TokenPair) -> None:
        """
        Replace `stale` with a refreshed pair.

        If another caller already replaced or cleared `stale` while we waited,
        nothing happens. Either way the caller follows up with
        ensure_authenticated(), which reuses a fresh pair or makes the single
        authentication attempt of this retry cycle.

        Raises:
            AuthRequestError: If the refresh call failed. The store is left
                              untouched; the caller decides what to discard.
        """
        while self._in_flight is not None:
            await self._in_flight.wait()

        if self._store.current is not stale:
            return

        await self._exclusive(lambda: self._refresh(stale))

    async def _exclusive(self, work: Callable[[], Awaitable[T]]) -> T:
        done = asyncio.Event()
        self._in_flight = done
        try:
            return await work()
        finally:
            # Cleared on failure too, so a failed attempt never wedges the gate.
            self._in_flight = None
            done.set()

    async def _authenticate(self) -> None:
        if not self._credentials.complete:
            raise AuthConfigError(
                "YOUMAP_CLIENT_ID and YOUMAP_CLIENT_SECRET are required for authentication"
            )
        logger.info("Authenticating with client credentials")
        try:
            pair = await self._authenticator.authenticate(self._credentials)
        except Exception:
            logger.warning("Authentication failed")
            raise
        self._store.install(pair)
        logger.info(
            "Authentication successful",
            extra={"event_data": {"expires_in": pair.expires_in}},
        )

    async def _refresh(self, stale: TokenPair) -> None:
        logger.info("Refreshing access token")
        try:
            pair = await self._authenticator.refresh(stale)
        except Exception:
            logger.warning("Token refresh failed")
            raise
        self._store.install(pair)
        logger.info(
            "Token refresh successful",
            extra={"event_data": {"expires_in": pair.expires_in}},
        )
