"""
Application configuration loaded from environment variables.

Uses pydantic-settings to define typed configuration that automatically reads
from environment variables. All config comes from the environment (or a local
.env file), never from source code.

Single-tenant transports (stdio and the REST shim) take their YouMap
credentials from here:
- YOUMAP_CLIENT_ID / YOUMAP_CLIENT_SECRET select OAuth client-credentials mode
- YOUMAP_API_KEY selects static API-key mode when no client credentials are set

The multi-tenant JSON-RPC endpoint ignores these credentials and uses the ones
embedded in each request URL; it still reads the base URL and timeouts here.
"""

from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings

from youmap_mcp.tokens import DEFAULT_EXPIRY_MARGIN, Credentials


class Settings(BaseSettings):
    """
    Server configuration with environment variable bindings.

    Each field maps to an environment variable with the YOUMAP_ prefix.
    For example, `client_id` reads from YOUMAP_CLIENT_ID. A few fields also
    accept the conventional container variables (MCP_MODE, PORT).
    """

    # --- YouMap platform ---

    base_url: str = "https://developer.youmap.com"

    client_id: str | None = None
    client_secret: str | None = None

    # Static key, used only when client credentials are absent.
    api_key: str | None = None

    # Seconds. Identity/refresh calls are kept short; business calls get more.
    auth_timeout: float = 10.0
    request_timeout: float = 30.0

    # Tokens count as expired this many seconds before their real expiry.
    expiry_margin: float = DEFAULT_EXPIRY_MARGIN

    # --- Server settings ---

    # "stdio" for desktop MCP clients, "http" for the streamable HTTP
    # endpoint plus the REST shim and the multi-tenant JSON-RPC endpoint.
    mode: Literal["stdio", "http"] = Field(
        default="stdio", validation_alias=AliasChoices("YOUMAP_MODE", "MCP_MODE")
    )

    host: str = "0.0.0.0"
    port: int = Field(default=3000, validation_alias=AliasChoices("YOUMAP_PORT", "PORT"))

    log_level: str = "info"

    # --- Tool-call audit log (optional) ---

    # Both must be set for tool calls to be reported; otherwise reporting is skipped.
    api_url: str | None = None
    internal_api_key: str | None = None
    audit_timeout: float = 5.0

    model_config = {
        "env_prefix": "YOUMAP_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    def credentials(self) -> Credentials:
        return Credentials(client_id=self.client_id, client_secret=self.client_secret)


# Singleton instance: import this from other modules.
settings = Settings()
