"""
YouMap MCP server: the tool catalog exposed over three transports.

- stdio (MCP_MODE=stdio, default): FastMCP over stdin/stdout for desktop
  MCP clients. One YouMapClient built from the YOUMAP_* environment.
- HTTP (MCP_MODE=http): the same FastMCP app over streamable HTTP at /mcp,
  plus plain HTTP routes:

      GET  /health                        liveness probe
      GET  /                              server info and tool names
      GET  /tools                         tool catalog with input schemas
      POST /call-tool                     REST shim {name, arguments}
      POST /rpc/{client_id}/{client_secret}
                                          multi-tenant JSON-RPC endpoint
      POST /rpc?apiKey=...                same, for API-key tenants

stdio, /mcp and /call-tool share the process-wide client. The /rpc
endpoint builds a fresh client from the credentials in the URL for every
request and closes it afterwards, so tenants never share tokens.

Running the server:
    youmap-mcp                       # stdio
    MCP_MODE=http PORT=3000 youmap-mcp
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Callable

from fastmcp import FastMCP
from fastmcp.tools import Tool
from fastmcp.tools.tool import ToolResult
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from youmap_mcp.audit import ToolCallAuditor, audited_call, extract_correlation_id
from youmap_mcp.client import YouMapClient
from youmap_mcp.config import Settings, settings
from youmap_mcp.errors import ToolArgumentsError, UnknownToolError, YouMapError
from youmap_mcp.rpc import SERVER_NAME, SERVER_VERSION, handle_body
from youmap_mcp.tokens import Credentials
from youmap_mcp.tooling import ToolDefinition
from youmap_mcp.tools import TOOLS, call_tool, list_tools

# ---------------------------------------------------------------------------
# Structured JSON Logging
# ---------------------------------------------------------------------------
# One JSON object per line on stderr. stdout is reserved for the stdio
# JSON-RPC stream, so nothing may be logged there.


class JSONLogFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

    Example output:

        {"timestamp": "2026-02-06 10:30:00,123", "level": "INFO",
         "logger": "youmap_mcp.gate", "message": "Authentication successful",
         "expires_in": 3600}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Merge structured fields passed via logger.info("msg", extra={"event_data": {...}})
        if hasattr(record, "event_data"):
            log_entry.update(record.event_data)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def configure_logging(level: str) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONLogFormatter())
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        handlers=[handler],
        force=True,
    )


logger = logging.getLogger("youmap-mcp")

ClientFactory = Callable[[Credentials | None, str | None], YouMapClient]


# ---------------------------------------------------------------------------
# FastMCP tool adapter
# ---------------------------------------------------------------------------


class ToolDefinitionAdapter(Tool):
    """Expose a :class:`ToolDefinition` as a FastMCP tool bound to one client."""

    def __init__(self, definition: ToolDefinition, client: YouMapClient) -> None:
        super().__init__(
            name=definition.name,
            description=definition.description,
            parameters=definition.input_schema,
            tags=set(),
        )
        self._definition = definition
        self._client = client

    async def run(self, arguments: dict[str, Any]) -> ToolResult:
        """Validate arguments and delegate to the registry dispatcher."""
        try:
            payload = await call_tool(self._definition.name, arguments, self._client)
        except YouMapError as e:
            logger.warning(
                "Error in tool %s", self._definition.name,
                extra={"event_data": {"error": type(e).__name__}},
            )
            raise
        return ToolResult(content=json.dumps(payload, indent=2), structured_content=payload)


def settings_client_factory(config: Settings) -> ClientFactory:
    """Client factory using the base URL and timeouts from `config`."""

    def factory(credentials: Credentials | None, api_key: str | None) -> YouMapClient:
        return YouMapClient.from_settings(config, credentials, api_key=api_key)

    return factory


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Server factory
# ---------------------------------------------------------------------------


def build_server(
    config: Settings,
    client_factory: ClientFactory | None = None,
    auditor: ToolCallAuditor | None = None,
) -> FastMCP:
    """
    Create the FastMCP app with every tool and HTTP route registered.

    Args:
        config: Settings supplying base URL, timeouts and single-tenant credentials
        client_factory: Builds a YouMapClient from (credentials, api_key);
                        (None, None) means "use the credentials in config"
        auditor: Tool-call reporter used by the HTTP routes
    """
    if client_factory is None:
        client_factory = settings_client_factory(config)
    if auditor is None:
        auditor = ToolCallAuditor.from_settings(config)

    # Single-tenant client shared by stdio, /mcp and the REST shim.
    shared_client = client_factory(None, None)

    mcp = FastMCP(
        name=SERVER_NAME,
        instructions=(
            "YouMap MCP Server - create interactive maps, posts and actions and manage "
            "geographic content through the YouMap platform API."
        ),
    )
    for definition in TOOLS:
        mcp.add_tool(ToolDefinitionAdapter(definition, shared_client))

    # -----------------------------------------------------------------------
    # Health and discovery
    # -----------------------------------------------------------------------

    @mcp.custom_route("/health", methods=["GET"])
    async def health_check(request: Request) -> Response:
        """Liveness probe: is the server process alive and responsive?"""
        return JSONResponse(
            {
                "status": "healthy",
                "server": SERVER_NAME,
                "version": SERVER_VERSION,
                "timestamp": _timestamp(),
            }
        )

    @mcp.custom_route("/", methods=["GET"])
    async def server_info(request: Request) -> Response:
        return JSONResponse(
            {
                "name": SERVER_NAME,
                "version": SERVER_VERSION,
                "endpoints": {
                    "mcp": "/mcp",
                    "tools": "/tools",
                    "callTool": "/call-tool",
                    "jsonRpc": "/rpc/{clientId}/{clientSecret}",
                },
                "tools": [{"name": t.name, "description": t.description} for t in TOOLS],
            }
        )

    @mcp.custom_route("/tools", methods=["GET"])
    async def tool_catalog(request: Request) -> Response:
        return JSONResponse({"tools": list_tools()})

    # -----------------------------------------------------------------------
    # REST shim
    # -----------------------------------------------------------------------

    @mcp.custom_route("/call-tool", methods=["POST"])
    async def rest_call_tool(request: Request) -> Response:
        """Call a tool with {"name": ..., "arguments": {...}} and get plain JSON back."""
        try:
            body = await request.json()
        except ValueError:
            return JSONResponse(
                {"error": "Invalid JSON", "message": "Request body must be JSON"}, status_code=400
            )

        name = body.get("name") if isinstance(body, dict) else None
        if not name:
            return JSONResponse(
                {"error": "Missing tool name", "message": "Tool name is required"}, status_code=400
            )

        try:
            result = await audited_call(
                auditor,
                name,
                body.get("arguments") or {},
                shared_client,
                correlation_id=extract_correlation_id(request.headers),
            )
        except UnknownToolError:
            return JSONResponse(
                {"error": "Unknown tool", "message": f"Tool '{name}' not found"}, status_code=404
            )
        except YouMapError as e:
            logger.warning(
                "Tool execution error",
                extra={"event_data": {"tool": name, "error": type(e).__name__}},
            )
            status = 400 if isinstance(e, ToolArgumentsError) else 500
            return JSONResponse(
                {"success": False, "error": e.message, "tool": name, "timestamp": _timestamp()},
                status_code=status,
            )

        return JSONResponse(
            {"success": True, "result": result, "tool": name, "timestamp": _timestamp()}
        )

    # -----------------------------------------------------------------------
    # Multi-tenant JSON-RPC endpoint
    # -----------------------------------------------------------------------

    async def _serve_rpc(request: Request, credentials: Credentials | None, api_key: str | None) -> Response:
        body = await request.body()
        correlation_id = extract_correlation_id(request.headers)
        async with client_factory(credentials, api_key) as client:
            response = await handle_body(body, client, auditor, correlation_id)
        if response is None:
            return Response(status_code=202)
        return JSONResponse(response)

    @mcp.custom_route("/rpc/{client_id}/{client_secret}", methods=["POST"])
    async def tenant_rpc(request: Request) -> Response:
        credentials = Credentials(
            client_id=request.path_params["client_id"],
            client_secret=request.path_params["client_secret"],
        )
        return await _serve_rpc(request, credentials, None)

    @mcp.custom_route("/rpc", methods=["POST"])
    async def api_key_rpc(request: Request) -> Response:
        api_key = request.query_params.get("apiKey")
        if not api_key:
            return JSONResponse(
                {"error": "Missing credentials", "message": "Use /rpc/{clientId}/{clientSecret} or ?apiKey="},
                status_code=401,
            )
        return await _serve_rpc(request, Credentials(), api_key)

    return mcp


configure_logging(settings.log_level)
mcp = build_server(settings)


# ---------------------------------------------------------------------------
# Server entry point
# ---------------------------------------------------------------------------


def main() -> None:
    if settings.mode == "http":
        logger.info(
            "Starting YouMap MCP server on %s:%d (transport=streamable-http)",
            settings.host,
            settings.port,
        )
        mcp.run(
            transport="streamable-http",
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level,
        )
    else:
        logger.info("Starting YouMap MCP server (transport=stdio)")
        mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
