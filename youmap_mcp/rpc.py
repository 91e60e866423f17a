"""
Minimal JSON-RPC 2.0 handling for the multi-tenant HTTP endpoint.

The endpoint speaks just enough MCP for remote clients that post plain
JSON-RPC (no sessions, no SSE): initialize, ping, tools/list and
tools/call. Notifications get no response. Batches are answered with a
list of responses.

Errors are reported as JSON-RPC error objects:

    -32700  body is not JSON
    -32600  not a JSON-RPC 2.0 request
    -32601  unknown method
    -32602  unknown tool or invalid tool arguments
    -32000  the tool ran and failed (data.statusCode carries the HTTP status)
"""

import json
import logging
from typing import Any

from mcp.types import INVALID_PARAMS, INVALID_REQUEST, METHOD_NOT_FOUND, PARSE_ERROR

from youmap_mcp.audit import ToolCallAuditor, audited_call
from youmap_mcp.client import YouMapClient
from youmap_mcp.errors import ToolArgumentsError, UnknownToolError, YouMapError
from youmap_mcp.tools import list_tools

SERVER_NAME = "youmap-mcp"
SERVER_VERSION = "1.0.0"
DEFAULT_PROTOCOL_VERSION = "2025-03-26"

# Standard codes come from mcp.types; this one is server-defined.
TOOL_FAILED = -32000

logger = logging.getLogger(__name__)


def error_response(request_id: Any, code: int, message: str, data: Any = None) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": request_id, "error": error}


def tool_content(payload: Any) -> dict[str, Any]:
    """Wrap a tool result the way MCP tools/call results look."""
    text = payload if isinstance(payload, str) else json.dumps(payload, indent=2)
    return {"content": [{"type": "text", "text": text}], "isError": False}


async def handle_message(
    message: Any,
    client: YouMapClient,
    auditor: ToolCallAuditor,
    correlation_id: str | None = None,
) -> dict[str, Any] | None:
    """Answer one JSON-RPC message. Returns None for notifications."""
    if (
        not isinstance(message, dict)
        or message.get("jsonrpc") != "2.0"
        or not isinstance(message.get("method"), str)
    ):
        request_id = message.get("id") if isinstance(message, dict) else None
        return error_response(request_id, INVALID_REQUEST, "Invalid Request")

    request_id = message.get("id")
    is_notification = "id" not in message
    method = message["method"]
    params = message.get("params") or {}
    if not isinstance(params, dict):
        return error_response(request_id, INVALID_PARAMS, "params must be an object")

    if method == "initialize":
        result: Any = {
            "protocolVersion": params.get("protocolVersion", DEFAULT_PROTOCOL_VERSION),
            "capabilities": {"tools": {}},
            "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
        }
    elif method == "ping":
        result = {}
    elif method == "tools/list":
        result = {"tools": list_tools()}
    elif method == "tools/call":
        name = params.get("name")
        if not name:
            return error_response(request_id, INVALID_PARAMS, "Missing tool name")
        try:
            payload = await audited_call(
                auditor, name, params.get("arguments"), client, correlation_id=correlation_id
            )
        except (UnknownToolError, ToolArgumentsError) as e:
            return error_response(request_id, INVALID_PARAMS, e.message)
        except YouMapError as e:
            logger.warning(
                "Tool call failed",
                extra={"event_data": {"tool": name, "error": type(e).__name__}},
            )
            return error_response(
                request_id, TOOL_FAILED, e.message, {"statusCode": e.status_code}
            )
        result = tool_content(payload)
    elif method.startswith("notifications/"):
        return None
    else:
        return error_response(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")

    if is_notification:
        return None
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


async def handle_body(
    body: bytes,
    client: YouMapClient,
    auditor: ToolCallAuditor,
    correlation_id: str | None = None,
) -> dict[str, Any] | list[dict[str, Any]] | None:
    """Parse a request body and answer a single message or a batch."""
    try:
        message = json.loads(body)
    except ValueError:
        return error_response(None, PARSE_ERROR, "Parse error")

    if isinstance(message, list):
        if not message:
            return error_response(None, INVALID_REQUEST, "Invalid Request")
        responses = []
        for item in message:
            response = await handle_message(item, client, auditor, correlation_id)
            if response is not None:
                responses.append(response)
        return responses or None

    return await handle_message(message, client, auditor, correlation_id)
