"""
Action tools.

An action is a post template: it defines which fields posts created with
it carry. The platform calls them post-templates; tools call them actions.
Updates address a specific template version.
"""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import Field

from youmap_mcp.client import YouMapClient
from youmap_mcp.errors import BusinessRequestError, ToolError, TransportNetworkError
from youmap_mcp.tooling import (
    ToolDefinition,
    ToolParameters,
    action_url,
    describe_failure,
    expect_object,
    map_url,
    pagination,
)

Duration = Literal[
    "Forever",
    "BasedOnDateField",
    "TwoMinutes",
    "HalfHour",
    "OneHour",
    "FourHours",
    "OneDay",
    "TwoDays",
    "ThreeDays",
    "SevenDays",
]

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"


class CreateActionParameters(ToolParameters):
    name: str = Field(min_length=3, max_length=50, description="Name of the action (3-50 characters)")
    map_id: int = Field(description="ID of the map this action belongs to")
    emoji: str = Field(
        default=":speech_balloon:",
        description="Emoji shortcode such as ':tree:' (not the emoji character)",
    )
    border_color: str | None = Field(default=None, pattern=HEX_COLOR, description="Hex color, e.g. '#FF5733'")
    duration: Duration = Field(
        default="Forever", description="How long posts created with this action remain active"
    )
    order: int | None = Field(default=None, description="Display order among other actions on the map")
    fields: dict[str, Any] | None = Field(
        default=None, description="Field definitions for posts created with this action"
    )


class ListActionsParameters(ToolParameters):
    map_id: int = Field(description="ID of the map to retrieve actions from")
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)
    phrase: str | None = Field(default=None, description="Filter actions by name")


class UpdateActionParameters(ToolParameters):
    action_id: int = Field(description="ID of the action to update")
    version: int = Field(description="Version to update (should be the latest version)")
    fields: dict[str, Any] = Field(description="Field definitions of the new version")
    name: str | None = Field(default=None, min_length=3, max_length=50)
    emoji: str | None = None
    border_color: str | None = Field(default=None, pattern=HEX_COLOR)
    duration: Duration | None = None
    auto_publish: bool = False


class DeleteActionParameters(ToolParameters):
    action_id: int = Field(description="ID of the action to delete")


def _action_summary(action: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": action.get("id"),
        "name": action.get("name"),
        "emoji": action.get("emoji"),
        "mapId": action.get("mapId"),
        "borderColor": action.get("borderColor"),
        "duration": action.get("duration"),
        "order": action.get("order"),
        "isDisabled": action.get("isDisabled"),
        "createdAt": action.get("createdAt"),
        "updatedAt": action.get("updatedAt"),
        "fields": action.get("fields"),
        "url": action_url(action.get("id")),
        "mapUrl": map_url(action.get("mapSlug")),
    }


async def create_action(params: CreateActionParameters, client: YouMapClient) -> dict[str, Any]:
    try:
        result = await client.post("/api/v1/post-template", params.to_payload())
    except (BusinessRequestError, TransportNetworkError) as e:
        raise describe_failure(
            e,
            "create action",
            forbidden="Access denied. You don't have permission to create actions on this map.",
            not_found="Map not found. Please check the mapId and ensure the map exists.",
        ) from e

    result = expect_object(result, "create action")
    return {
        "success": True,
        "message": f'Successfully created action: "{result.get("name")}"',
        "action": _action_summary(result),
    }


async def list_actions(params: ListActionsParameters, client: YouMapClient) -> dict[str, Any]:
    try:
        result = await client.get(
            f"/api/v1/map/{params.map_id}/post-templates",
            params.to_payload(exclude={"map_id"}),
        )
    except (BusinessRequestError, TransportNetworkError) as e:
        raise describe_failure(
            e,
            "list actions",
            forbidden="Access denied. You don't have permission to view actions on this map.",
            not_found="Map not found. Please check the mapId and ensure the map exists.",
        ) from e

    result = expect_object(result, "list actions")
    total = result.get("count", 0)
    actions = []
    for action in result.get("postTemplates", []):
        summary = _action_summary(action)
        summary["version"] = action.get("latestVersion")
        actions.append(summary)

    return {
        "success": True,
        "message": f"Found {total} action(s) on map {params.map_id}",
        "pagination": pagination(total, params.limit, params.offset),
        "actions": actions,
    }


async def update_action(params: UpdateActionParameters, client: YouMapClient) -> dict[str, Any]:
    try:
        result = await client.put(
            f"/api/v1/post-template/{params.action_id}/v/{params.version}",
            params.to_payload(exclude={"action_id"}),
        )
    except (BusinessRequestError, TransportNetworkError) as e:
        raise describe_failure(
            e,
            "update this action",
            not_found=(
                f"Action not found. Please check the actionId {params.action_id} "
                f"and version {params.version}."
            ),
        ) from e

    result = expect_object(result, "update this action")
    summary = _action_summary(result)
    summary.update(
        version=result.get("version"),
        isPublished=result.get("isPublished"),
        publishedAt=result.get("publishedAt"),
    )
    return {
        "success": True,
        "message": f"Successfully updated action {params.action_id} version {params.version}",
        "action": summary,
    }


async def delete_action(params: DeleteActionParameters, client: YouMapClient) -> dict[str, Any]:
    try:
        result = await client.delete(f"/api/v1/post-template/{params.action_id}")
    except (BusinessRequestError, TransportNetworkError) as e:
        raise describe_failure(
            e,
            "delete this action",
            forbidden=(
                "Access denied. You don't have permission to delete this action, or the "
                "action is not removable because it's being used by posts."
            ),
            not_found="Action not found. Please check the actionId and ensure the action exists.",
        ) from e

    if not (isinstance(result, dict) and result.get("success")):
        raise ToolError("Failed to delete action - operation returned false")

    return {
        "success": True,
        "message": f"Successfully deleted action with ID: {params.action_id}",
        "actionId": params.action_id,
        "deletedAt": datetime.now(timezone.utc).isoformat(),
    }


ACTION_TOOLS = (
    ToolDefinition(
        name="create_action",
        description=(
            "Create a new action (post template) that defines the structure for posts: "
            "which fields and content types posts can contain."
        ),
        parameters_model=CreateActionParameters,
        handler=create_action,
    ),
    ToolDefinition(
        name="list_actions",
        description="Retrieve the actions (post templates) of a specific map.",
        parameters_model=ListActionsParameters,
        handler=list_actions,
    ),
    ToolDefinition(
        name="update_action",
        description=(
            "Update an existing action (post template). Always update the latest "
            "version of an action."
        ),
        parameters_model=UpdateActionParameters,
        handler=update_action,
    ),
    ToolDefinition(
        name="delete_action",
        description=(
            "Delete an action (post template) permanently. The action must be owned by the "
            "authenticated user and not in use by posts."
        ),
        parameters_model=DeleteActionParameters,
        handler=delete_action,
    ),
)
