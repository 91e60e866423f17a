"""
Credentials and the per-client token store.

A TokenPair is immutable: a refresh produces a new pair that replaces the
old one wholesale, and a failed refresh clears the store so the next call
re-authenticates from scratch. Nothing here is shared between clients;
each YouMapClient owns exactly one TokenStore.
"""

import time
from dataclasses import dataclass
from typing import Callable

# Tokens are considered stale this long before they actually expire, so a
# token never runs out in the middle of a request.
DEFAULT_EXPIRY_MARGIN = 5 * 60


@dataclass(frozen=True)
class Credentials:
    """OAuth client-credentials pair for the identity endpoint."""

    client_id: str | None = None
    client_secret: str | None = None

    @property
    def complete(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def __repr__(self) -> str:
        # Keep the secret out of logs and tracebacks.
        return f"Credentials(client_id={self.client_id!r}, client_secret=***)"


@dataclass(frozen=True)
class TokenPair:
    """
    Access/refresh token pair returned by the identity endpoint.

    Attributes:
        access_token: Bearer token attached to business calls
        refresh_token: Exchanged for a new pair without the client secret
        expires_in: Lifetime of the access token in seconds
        obtained_at: Unix timestamp (seconds) when the pair was issued
    """

    access_token: str
    refresh_token: str
    expires_in: int
    obtained_at: float

    @property
    def expires_at(self) -> float:
        return self.obtained_at + self.expires_in


class TokenStore:
    """Holds zero or one TokenPair and answers whether it is still usable."""

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        expiry_margin: float = DEFAULT_EXPIRY_MARGIN,
    ) -> None:
        self._clock = clock
        self._expiry_margin = expiry_margin
        self._pair: TokenPair | None = None

    @property
    def current(self) -> TokenPair | None:
        return self._pair

    def is_expired(self) -> bool:
        """True when no pair is held or the pair is inside the safety margin."""
        if self._pair is None:
            return True
        return self._clock() >= self._pair.expires_at - self._expiry_margin

    def install(self, pair: TokenPair) -> None:
        self._pair = pair

    def clear(self) -> None:
        self._pair = None

    def discard(self, pair: TokenPair) -> bool:
        """Clear the store only if it still holds `pair`.

        Returns True if the pair was removed. A pair installed by another
        caller in the meantime is left alone.
        """
        if self._pair is pair:
            self._pair = None
            return True
        return False
