"""
Tool registry and dispatcher.

This module is the central catalog every transport uses:

    TOOLS = (create_map, list_maps, ..., delete_action)

Each entry pairs an input schema (a pydantic model) with an async handler
that receives the validated arguments and a YouMapClient. Dispatch is a
plain lookup by name: the registry knows nothing about transports, and
handlers know nothing about authentication beyond "call the client".

Why separate this from server.py?
- The stdio server, the REST shim and the multi-tenant JSON-RPC endpoint
  all dispatch through call_tool(), so they behave identically.
- Adding a tool means adding it to one of the *_TOOLS tuples; every
  transport picks it up.
"""

import logging
from typing import Any

from youmap_mcp.actions import ACTION_TOOLS
from youmap_mcp.client import YouMapClient
from youmap_mcp.errors import UnknownToolError
from youmap_mcp.maps import MAP_TOOLS
from youmap_mcp.posts import POST_TOOLS
from youmap_mcp.tooling import ToolDefinition

logger = logging.getLogger(__name__)

TOOLS: tuple[ToolDefinition, ...] = MAP_TOOLS + POST_TOOLS + ACTION_TOOLS

TOOLS_BY_NAME: dict[str, ToolDefinition] = {tool.name: tool for tool in TOOLS}


def get_tool(name: str) -> ToolDefinition:
    """
    Look up a tool by name.

    Raises:
        UnknownToolError: If no tool has that name
    """
    try:
        return TOOLS_BY_NAME[name]
    except KeyError:
        raise UnknownToolError(name) from None


def list_tools() -> list[dict[str, Any]]:
    """Discovery metadata for every tool, in catalog order."""
    return [tool.metadata() for tool in TOOLS]


async def call_tool(
    name: str, arguments: dict[str, Any] | None, client: YouMapClient
) -> dict[str, Any]:
    """
    Validate `arguments` and run the named tool against `client`.

    Raises:
        UnknownToolError: If the tool does not exist
        ToolArgumentsError: If the arguments do not match the input schema
        YouMapError: Whatever the handler or the client raised
    """
    tool = get_tool(name)
    params = tool.validate(arguments or {})
    logger.info("Tool executed: %s", name)
    return await tool.handler(params, client)
