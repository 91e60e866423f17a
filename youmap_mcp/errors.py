"""
Error taxonomy for the YouMap gateway.

Every failure raised by the request pipeline is one of the classes below,
so callers decide what to do by checking the exception type (and its
status_code), never by searching the message text.

    YouMapError
    ├── AuthConfigError        credentials missing, nothing was sent
    ├── AuthRequestError       identity/refresh endpoint rejected or unreachable
    ├── BusinessRequestError   a platform call answered with a non-2xx status
    ├── TransportNetworkError  timeout, DNS failure, refused connection
    └── ToolError              a tool handler could not complete
        ├── UnknownToolError
        └── ToolArgumentsError

The core is transport-agnostic: it raises these plain exceptions and the
front-ends (stdio, REST shim, JSON-RPC endpoint) turn them into whatever
the protocol expects.
"""

from typing import Any


class YouMapError(Exception):
    """
    Base class for all gateway errors.

    Attributes:
        message: Human-readable error description
        status_code: HTTP status code involved, if any
    """

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class AuthConfigError(YouMapError):
    """Client ID / client secret were not supplied."""


class AuthRequestError(YouMapError):
    """The identity exchange or the token refresh call failed."""


class BusinessRequestError(YouMapError):
    """
    A business call returned a non-success status.

    The platform's own message and the decoded body are kept intact so tool
    handlers can build descriptive errors (e.g. validation details on 400).
    """

    def __init__(self, message: str, status_code: int, payload: Any = None):
        super().__init__(message, status_code)
        self.payload = payload


class TransportNetworkError(YouMapError):
    """
    The request never got an HTTP answer.

    Attributes:
        kind: "timeout", "connect" or "network"
    """

    def __init__(self, message: str, kind: str):
        super().__init__(message)
        self.kind = kind


class ToolError(YouMapError):
    """A tool handler failed; the message is meant for the MCP client."""


class UnknownToolError(ToolError):
    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}", status_code=404)
        self.name = name


class ToolArgumentsError(ToolError):
    def __init__(self, message: str):
        super().__init__(message, status_code=400)
