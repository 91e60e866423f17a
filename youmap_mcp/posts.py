"""Post tools: content items placed on a map at a location."""

from typing import Any, Literal

from pydantic import Field

from youmap_mcp.client import YouMapClient
from youmap_mcp.errors import BusinessRequestError, TransportNetworkError
from youmap_mcp.tooling import (
    ToolDefinition,
    ToolParameters,
    describe_failure,
    expect_object,
    map_url,
    pagination,
    post_url,
)

MAP_NOT_FOUND = "Map not found. Please check the mapId and ensure the map exists."


class CreatePostParameters(ToolParameters):
    map_id: int = Field(description="ID of the map where the post will be created")
    latitude: float = Field(ge=-90, le=90, description="Latitude where the post is placed")
    longitude: float = Field(ge=-180, le=180, description="Longitude where the post is placed")
    action_id: int = Field(
        description="ID of the action (post template). Always use the latest version of the action."
    )
    name: str | None = Field(default=None, max_length=100, description="Name/title of the post")
    description: str | None = Field(default=None, max_length=500)
    address: str | None = None
    place_id: str | None = Field(default=None, description="Place ID from a mapping service")
    save_as_template: bool = False
    content_origin: Literal["App", "PublicAPI"] = "PublicAPI"
    fields: dict[str, Any] | None = Field(
        default=None, description="Custom field values based on the action template"
    )


class ListPostsParameters(ToolParameters):
    map_id: int = Field(description="ID of the map to retrieve posts from")
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)
    order_by: Literal["trending", "recent"] = "recent"
    filter_action_ids: list[int] | None = Field(
        default=None, description="Only return posts created with these action IDs"
    )


class SearchPostsParameters(ToolParameters):
    phrase: str = Field(min_length=1, description="Search phrase to find in post names")
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)


class UpdatePostParameters(ToolParameters):
    post_id: int = Field(description="ID of the post to update")
    name: str | None = Field(default=None, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    action_id: int | None = None
    address: str | None = None
    place_id: str | None = None
    fields: dict[str, Any] | None = None
    deleted_fields: list[int] | None = Field(
        default=None, description="Field IDs to delete from the post"
    )


class PostIdParameters(ToolParameters):
    post_id: int = Field(description="ID of the post to delete")


def _post_summary(post: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": post.get("id"),
        "name": post.get("name"),
        "description": post.get("description"),
        "latitude": post.get("lat"),
        "longitude": post.get("lon"),
        "mapId": post.get("mapId"),
        "userId": post.get("userId"),
        "actionId": post.get("actionId"),
        "actionName": post.get("actionName"),
        "emoji": post.get("emoji"),
        "address": post.get("address"),
        "isEditable": post.get("isEditable"),
        "isPublic": post.get("isPublic"),
        "isQuickPost": post.get("isQuickPost"),
        "voteCount": post.get("voteCount"),
        "commentsCount": post.get("commentsCount"),
        "categoryIds": post.get("categoryIds"),
        "createdAt": post.get("createdAt"),
        "updatedAt": post.get("updatedAt"),
        "score": post.get("score"),
        "url": post_url(post.get("mapSlug"), post.get("slug")),
        "mapUrl": map_url(post.get("mapSlug")),
    }


async def create_post(params: CreatePostParameters, client: YouMapClient) -> dict[str, Any]:
    payload = params.to_payload(exclude={"latitude", "longitude"})
    # The platform names coordinates lat/lon.
    payload["lat"] = params.latitude
    payload["lon"] = params.longitude
    try:
        result = await client.post("/api/v1/post", payload)
    except (BusinessRequestError, TransportNetworkError) as e:
        raise describe_failure(
            e,
            "create post",
            forbidden="Access denied. You don't have permission to create posts on this map.",
            not_found=MAP_NOT_FOUND,
        ) from e

    result = expect_object(result, "create post")
    return {
        "success": True,
        "message": f'Successfully created post: "{result.get("name") or "Untitled"}"',
        "post": _post_summary(result),
    }


async def list_posts(params: ListPostsParameters, client: YouMapClient) -> dict[str, Any]:
    query = params.to_payload(exclude={"map_id"})
    if not params.filter_action_ids:
        query.pop("filterActionIds", None)
    try:
        result = await client.get(f"/api/v1/map/{params.map_id}/posts", query)
    except (BusinessRequestError, TransportNetworkError) as e:
        raise describe_failure(
            e,
            "list posts",
            forbidden="Access denied. You don't have permission to view posts on this map.",
            not_found=MAP_NOT_FOUND,
        ) from e

    result = expect_object(result, "list posts")
    total = result.get("count", 0)
    return {
        "success": True,
        "message": f"Found {total} post(s) on map {params.map_id}",
        "pagination": pagination(total, params.limit, params.offset),
        "posts": [_post_summary(p) for p in result.get("posts", [])],
    }


async def search_posts_by_name(
    params: SearchPostsParameters, client: YouMapClient
) -> dict[str, Any]:
    try:
        result = await client.get("/api/v1/post/search/name", params.to_payload())
    except (BusinessRequestError, TransportNetworkError) as e:
        raise describe_failure(e, "search posts by name") from e

    result = expect_object(result, "search posts by name")
    total = result.get("count", 0)
    return {
        "success": True,
        "message": f'Found {total} post(s) with names matching "{params.phrase}"',
        "searchQuery": params.phrase,
        "pagination": pagination(total, params.limit, params.offset),
        "posts": [_post_summary(p) for p in result.get("posts", [])],
    }


async def update_post(params: UpdatePostParameters, client: YouMapClient) -> dict[str, Any]:
    try:
        result = await client.post(
            f"/api/v2/post/{params.post_id}", params.to_payload(exclude={"post_id"})
        )
    except (BusinessRequestError, TransportNetworkError) as e:
        raise describe_failure(
            e,
            "update this post",
            not_found="Post not found. Please check the postId and ensure the post exists.",
        ) from e

    return {"success": True, "data": result}


async def delete_post(params: PostIdParameters, client: YouMapClient) -> dict[str, Any]:
    try:
        await client.delete(f"/api/v1/post/{params.post_id}")
    except (BusinessRequestError, TransportNetworkError) as e:
        raise describe_failure(
            e, "delete this post", not_found=f"Post with ID {params.post_id} not found."
        ) from e

    return {
        "success": True,
        "message": f"Post with ID {params.post_id} has been deleted successfully",
        "postId": params.post_id,
    }


async def admin_delete_post(params: PostIdParameters, client: YouMapClient) -> dict[str, Any]:
    try:
        await client.delete(f"/api/v1/post/admin/{params.post_id}")
    except (BusinessRequestError, TransportNetworkError) as e:
        raise describe_failure(
            e,
            "delete this post",
            forbidden="Access denied. Admin privileges required to delete posts.",
            not_found=f"Post with ID {params.post_id} not found.",
        ) from e

    return {
        "success": True,
        "message": f"Post with ID {params.post_id} has been deleted successfully by admin",
        "postId": params.post_id,
    }


POST_TOOLS = (
    ToolDefinition(
        name="create_post",
        description=(
            "Create a new post on a map. Posts are content items that users place on maps "
            "at specific geographic locations."
        ),
        parameters_model=CreatePostParameters,
        handler=create_post,
    ),
    ToolDefinition(
        name="list_posts",
        description="Retrieve a list of posts from a specific map with pagination and filtering support.",
        parameters_model=ListPostsParameters,
        handler=list_posts,
    ),
    ToolDefinition(
        name="search_posts_by_name",
        description=(
            "Search for posts by their names across all users' posts. Use this to find "
            "posts with specific titles, not just the logged in user's."
        ),
        parameters_model=SearchPostsParameters,
        handler=search_posts_by_name,
    ),
    ToolDefinition(
        name="update_post",
        description=(
            "Update an existing post. You can modify the post's content, location, "
            "fields, and other properties."
        ),
        parameters_model=UpdatePostParameters,
        handler=update_post,
    ),
    ToolDefinition(
        name="delete_post",
        description=(
            "Delete an existing post permanently. The post must be owned by the "
            "authenticated user or you must have delete permissions on the map."
        ),
        parameters_model=PostIdParameters,
        handler=delete_post,
    ),
    ToolDefinition(
        name="admin_delete_post",
        description=(
            "Admin-only tool to delete any post permanently, regardless of ownership. "
            "Use this when the user tries to remove a post they do not own."
        ),
        parameters_model=PostIdParameters,
        handler=admin_delete_post,
    ),
)
