"""Map tools: create, list, update and delete maps."""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import Field, model_validator

from youmap_mcp.client import YouMapClient
from youmap_mcp.errors import BusinessRequestError, ToolError, TransportNetworkError
from youmap_mcp.tooling import (
    ToolDefinition,
    ToolParameters,
    WireModel,
    describe_failure,
    expect_object,
    map_url,
    pagination,
)

AccessLevel = Literal["public", "inviteOnly", "private"]


class Coordinates(WireModel):
    lat: float = Field(description="Latitude")
    lon: float = Field(description="Longitude")


class BoundingBox(WireModel):
    """Coordinates for the initial map view."""

    left_bottom: Coordinates = Field(description="Bottom-left corner coordinates")
    right_top: Coordinates = Field(description="Top-right corner coordinates")


class CreateMapParameters(ToolParameters):
    name: str = Field(min_length=3, max_length=50, description="Name of the map (3-50 characters)")
    description: str | None = Field(
        default=None, min_length=5, max_length=500, description="Description of the map (5-500 characters)"
    )
    access_level: AccessLevel = Field(
        default="private",
        description="public (everyone), inviteOnly (invited users) or private (only you)",
    )
    cover_image_from_url: str | None = Field(default=None, description="Cover image URL")
    invited_user_ids: list[int] = Field(
        default_factory=list, description="User IDs to invite (only used when accessLevel is inviteOnly)"
    )
    category_ids: list[int] = Field(
        default_factory=lambda: [13], min_length=1, max_length=3, description="1-3 category IDs"
    )
    readonly: bool = Field(default=False, description="Prevent other users from posting on this map")
    bounding_box: BoundingBox | None = None


class ListMapsParameters(ToolParameters):
    limit: int = Field(default=20, ge=1, le=100, description="Maximum number of maps to return")
    offset: int = Field(default=0, ge=0, description="Number of maps to skip")


class UpdateMapParameters(ToolParameters):
    map_id: int = Field(description="ID of the map to update")
    name: str | None = Field(default=None, min_length=3, max_length=50)
    description: str | None = Field(default=None, min_length=5, max_length=500)
    access_level: AccessLevel | None = None
    cover_image_from_url: str | None = None
    invited_user_ids: list[int] | None = None
    category_ids: list[int] | None = Field(default=None, min_length=1, max_length=3)
    readonly: bool | None = None
    bounding_box: BoundingBox | None = None

    @model_validator(mode="after")
    def _has_changes(self) -> "UpdateMapParameters":
        if not self.to_payload(exclude={"map_id"}):
            raise ValueError("At least one field must be provided for update")
        return self


class DeleteMapParameters(ToolParameters):
    map_id: int = Field(description="ID of the map to delete")


def _map_summary(result: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": result.get("id"),
        "name": result.get("name"),
        "description": result.get("description"),
        "coverImage": result.get("coverImage"),
        "accessLevel": result.get("accessLevel"),
        "isReadonly": result.get("isReadonly"),
        "public": result.get("public"),
        "inviteEnabled": result.get("inviteEnabled"),
        "categoryIds": result.get("categoryIds"),
        "createdAt": result.get("createdAt"),
        "updatedAt": result.get("updatedAt"),
        "url": map_url(result.get("slug")),
    }


async def create_map(params: CreateMapParameters, client: YouMapClient) -> dict[str, Any]:
    payload = params.to_payload()
    payload["contentOrigin"] = "PublicAPI"
    try:
        result = await client.post("/api/v1/map", payload)
    except (BusinessRequestError, TransportNetworkError) as e:
        raise describe_failure(e, "create map") from e

    result = expect_object(result, "create map")
    return {
        "success": True,
        "message": f'Successfully created map: "{result.get("name")}"',
        "map": _map_summary(result),
    }


async def list_maps(params: ListMapsParameters, client: YouMapClient) -> dict[str, Any]:
    query = params.to_payload()
    try:
        result = await client.get("/api/v1/map", query)
    except (BusinessRequestError, TransportNetworkError) as e:
        raise describe_failure(e, "list maps") from e

    result = expect_object(result, "list maps")
    total = result.get("count", 0)
    return {
        "success": True,
        "message": f"Found {total} map(s)",
        "pagination": pagination(total, params.limit, params.offset),
        "maps": [_map_summary(m) for m in result.get("maps", [])],
    }


async def update_map(params: UpdateMapParameters, client: YouMapClient) -> dict[str, Any]:
    try:
        result = await client.post(
            f"/api/v1/maps/{params.map_id}", params.to_payload(exclude={"map_id"})
        )
    except (BusinessRequestError, TransportNetworkError) as e:
        raise describe_failure(
            e, "update this map", not_found=f"Map with ID {params.map_id} not found."
        ) from e

    return {
        "success": True,
        "message": f"Map with ID {params.map_id} has been updated successfully",
        "map": result,
    }


async def delete_map(params: DeleteMapParameters, client: YouMapClient) -> dict[str, Any]:
    try:
        result = await client.delete(f"/api/v1/map/{params.map_id}")
    except (BusinessRequestError, TransportNetworkError) as e:
        raise describe_failure(
            e,
            "delete this map",
            forbidden=(
                "Access denied. You don't have permission to delete this map, "
                "or you are not the owner of this map."
            ),
            not_found="Map not found. Please check the mapId and ensure the map exists.",
        ) from e

    if not (isinstance(result, dict) and result.get("success")):
        raise ToolError("Failed to delete map - operation returned false")

    return {
        "success": True,
        "message": f"Successfully deleted map with ID: {params.map_id}",
        "mapId": params.map_id,
        "deletedAt": datetime.now(timezone.utc).isoformat(),
    }


MAP_TOOLS = (
    ToolDefinition(
        name="create_map",
        description=(
            "Create a new map for a user. Maps are spaces where users can add posts, "
            "places, and organize content geographically."
        ),
        parameters_model=CreateMapParameters,
        handler=create_map,
    ),
    ToolDefinition(
        name="list_maps",
        description="Retrieve a list of maps belonging to the authenticated user with pagination support.",
        parameters_model=ListMapsParameters,
        handler=list_maps,
    ),
    ToolDefinition(
        name="update_map",
        description=(
            "Update an existing map's properties such as name, description, access level, "
            "categories, and other settings. The map must be owned by the authenticated user."
        ),
        parameters_model=UpdateMapParameters,
        handler=update_map,
    ),
    ToolDefinition(
        name="delete_map",
        description=(
            "Delete an existing map permanently. This cannot be undone. All posts, actions, "
            "and associated data on the map will be removed."
        ),
        parameters_model=DeleteMapParameters,
        handler=delete_map,
    ),
)
