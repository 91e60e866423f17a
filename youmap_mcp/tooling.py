"""Building blocks shared by every YouMap tool."""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from youmap_mcp.client import YouMapClient
from youmap_mcp.errors import (
    BusinessRequestError,
    ToolArgumentsError,
    ToolError,
    TransportNetworkError,
)

APP_URL = "https://youmap.com/app"
ACTION_URL = "https://youmap.com/action"


class WireModel(BaseModel):
    """Snake_case in Python, camelCase on the wire and in the input schema."""

    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_payload(self, *, exclude: set[str] | None = None) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, exclude=exclude)


class ToolParameters(WireModel):
    """Base parameters schema for MCP tools."""


Handler = Callable[[Any, YouMapClient], Awaitable[dict[str, Any]]]


@dataclass(frozen=True)
class ToolDefinition:
    """
    A tool that can be listed and dispatched by name.

    Attributes:
        name: Unique name of the tool
        description: Text shown to the model choosing tools
        parameters_model: Pydantic model validating the tool arguments
        handler: Coroutine taking (validated parameters, client)
    """

    name: str
    description: str
    parameters_model: type[ToolParameters]
    handler: Handler

    def validate(self, arguments: dict[str, Any]) -> ToolParameters:
        """
        Validate and coerce incoming tool arguments.

        Raises:
            ToolArgumentsError: If validation fails
        """
        try:
            return self.parameters_model.model_validate(arguments)
        except ValidationError as error:
            details = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
                for err in error.errors()
            )
            raise ToolArgumentsError(
                f"Invalid arguments for tool '{self.name}': {details}"
            ) from error

    @property
    def input_schema(self) -> dict[str, Any]:
        return self.parameters_model.model_json_schema(by_alias=True)

    def metadata(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


def parse_validation_errors(payload: Any) -> str:
    """
    Flatten a platform 400 body into readable lines.

    The platform reports class-validator trees under details.message:
        [{"property": "name", "constraints": {...}, "children": [...]}]
    Each constraint becomes "parent.child: text". Bodies without that tree
    fall back to their top-level message.
    """
    details = payload.get("details") if isinstance(payload, dict) else None
    errors = details.get("message") if isinstance(details, dict) else None
    if not isinstance(errors, list):
        if isinstance(payload, dict) and payload.get("message"):
            return str(payload["message"])
        return "Invalid request data"

    messages: list[str] = []

    def collect(error: dict, path: str = "") -> None:
        field = f"{path}.{error.get('property')}" if path else str(error.get("property"))
        for constraint in (error.get("constraints") or {}).values():
            messages.append(f"{field}: {constraint}")
        for child in error.get("children") or []:
            collect(child, field)

    for error in errors:
        if isinstance(error, dict):
            collect(error)

    if not messages:
        return "Validation failed with unknown error"
    return "Validation failed:\n" + "\n".join(f"  - {m}" for m in messages)


def describe_failure(
    error: BusinessRequestError | TransportNetworkError,
    action: str,
    *,
    forbidden: str | None = None,
    not_found: str | None = None,
) -> ToolError:
    """Turn a pipeline error into the message the MCP client gets to see."""
    if isinstance(error, TransportNetworkError):
        return ToolError(f"Failed to {action}: {error.message}")

    status = error.status_code
    if status == 401:
        message = "Authentication failed. Please check your credentials."
    elif status == 403:
        message = forbidden or f"Access denied. You don't have permission to {action}."
    elif status == 404 and not_found:
        message = not_found
    elif status == 400:
        message = f"Validation error: {parse_validation_errors(error.payload)}"
    else:
        message = f"Failed to {action}: server error ({status}): {error.message}"
    return ToolError(message, status_code=status)


def map_url(slug: str | None) -> str:
    return f"{APP_URL}/{slug}"


def post_url(map_slug: str | None, slug: str | None) -> str:
    return f"{APP_URL}/{map_slug}/posts/{slug}"


def action_url(action_id: Any) -> str:
    return f"{ACTION_URL}/{action_id}"


def pagination(total: int, limit: int, offset: int) -> dict[str, Any]:
    return {
        "total": total,
        "limit": limit,
        "offset": offset,
        "hasMore": offset + limit < total,
    }


def expect_object(result: Any, action: str) -> dict[str, Any]:
    """Reject 2xx answers whose body is not a JSON object (empty, text, list)."""
    if not isinstance(result, dict):
        raise ToolError(f"Failed to {action}: unexpected response from the YouMap API")
    return result
