"""MCP server exposing the movie sync engine as tools."""

import asyncio
import json
import logging
import mimetypes
import sys
from pathlib import Path

from attrs import asdict
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from ..client import MovieSyncClient
from ..config import get_settings
from ..errors import MutationInFlightError
from ..models.movie import Genre, MovieSummary

MOVIE_ID_SCHEMA = {
    "type": "integer",
    "description": "Movie ID",
}


def movie_to_dict(movie: MovieSummary) -> dict:
    """Summarize a movie for tool output."""
    return {
        "id": movie.id,
        "title": movie.title,
        "release_date": movie.release_date,
        "popularity": movie.popularity,
        "genres": [g.name for g in movie.genres],
    }


def movie_from_arguments(arguments: dict) -> MovieSummary:
    """Build a movie from tool arguments."""
    return MovieSummary(
        id=arguments["movie_id"],
        title=arguments.get("title", ""),
        overview=arguments.get("overview", ""),
        poster_path=arguments.get("poster_path", ""),
        popularity=arguments.get("popularity", 0.0),
        release_date=arguments.get("release_date"),
        genres=[Genre(id=None, name=g) for g in arguments.get("genres", [])],
    )


def session_summary(client: MovieSyncClient) -> dict:
    """Describe the current session and what is loaded."""
    store = client.store
    user = store.identity
    return {
        "state": client.session.state.value,
        "user": asdict(user) if user else None,
        "watchlist_count": len(store.watchlist),
        "liked_count": len(store.liked),
        "unread_notifications": store.unread_count,
        "stale": sorted(store.stale),
    }


def _text(result) -> list[TextContent]:
    if isinstance(result, str):
        return [TextContent(type="text", text=result)]
    return [TextContent(type="text", text=json.dumps(result, indent=2))]


def create_mcp_server(client: MovieSyncClient | None = None) -> Server:
    """Create and configure the MCP server."""
    server = Server("movie-sync")
    if client is None:
        client = MovieSyncClient.from_settings(get_settings())

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return [
            Tool(
                name="get_session",
                description="Show the authentication state and what user data is loaded",
                inputSchema={"type": "object", "properties": {}},
            ),
            Tool(
                name="login",
                description="Log in with email and password, then load the user's data in stages",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "email": {"type": "string"},
                        "password": {"type": "string"},
                    },
                    "required": ["email", "password"],
                },
            ),
            Tool(
                name="verify_token",
                description="Verify an identity-provider token with the backend",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "token": {
                            "type": "string",
                            "description": "ID token issued by the identity provider",
                        },
                    },
                    "required": ["token"],
                },
            ),
            Tool(
                name="check_backend_session",
                description="Resume an existing backend session if one is active",
                inputSchema={"type": "object", "properties": {}},
            ),
            Tool(
                name="logout",
                description="Log out and clear all local user data",
                inputSchema={"type": "object", "properties": {}},
            ),
            Tool(
                name="get_watchlist",
                description="List the movies in the user's watchlist",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "refresh": {
                            "type": "boolean",
                            "description": "Reload from the backend first (default false)",
                        },
                    },
                },
            ),
            Tool(
                name="add_to_watchlist",
                description="Add a movie to the watchlist",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "movie_id": MOVIE_ID_SCHEMA,
                        "title": {"type": "string"},
                        "overview": {"type": "string"},
                        "poster_path": {"type": "string"},
                        "popularity": {"type": "number"},
                        "release_date": {"type": "string"},
                        "genres": {
                            "type": "array",
                            "items": {"type": "string"},
                        },
                    },
                    "required": ["movie_id", "title"],
                },
            ),
            Tool(
                name="remove_from_watchlist",
                description="Remove a movie from the watchlist",
                inputSchema={
                    "type": "object",
                    "properties": {"movie_id": MOVIE_ID_SCHEMA},
                    "required": ["movie_id"],
                },
            ),
            Tool(
                name="get_likes",
                description="List the IDs of the movies the user liked",
                inputSchema={"type": "object", "properties": {}},
            ),
            Tool(
                name="toggle_like",
                description="Like or unlike a movie",
                inputSchema={
                    "type": "object",
                    "properties": {"movie_id": MOVIE_ID_SCHEMA},
                    "required": ["movie_id"],
                },
            ),
            Tool(
                name="get_stats",
                description="Show the user's usage statistics",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "refresh": {
                            "type": "boolean",
                            "description": "Reload from the backend first (default false)",
                        },
                    },
                },
            ),
            Tool(
                name="get_recommendations",
                description="Get personalized recommendations (cached for a few minutes)",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "limit": {
                            "type": "integer",
                            "description": "Maximum number of movies (default 10)",
                        },
                    },
                },
            ),
            Tool(
                name="train_recommendations",
                description="Retrain the recommendation models and drop cached results",
                inputSchema={"type": "object", "properties": {}},
            ),
            Tool(
                name="refresh_user_data",
                description="Re-sync profile, watchlist, likes and statistics",
                inputSchema={"type": "object", "properties": {}},
            ),
            Tool(
                name="get_comments",
                description="List the comments on a movie",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "movie_id": MOVIE_ID_SCHEMA,
                        "refresh": {"type": "boolean"},
                    },
                    "required": ["movie_id"],
                },
            ),
            Tool(
                name="add_comment",
                description="Post a comment on a movie",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "movie_id": MOVIE_ID_SCHEMA,
                        "text": {"type": "string"},
                    },
                    "required": ["movie_id", "text"],
                },
            ),
            Tool(
                name="get_notifications",
                description="List the user's notifications",
                inputSchema={
                    "type": "object",
                    "properties": {"refresh": {"type": "boolean"}},
                },
            ),
            Tool(
                name="mark_notification_read",
                description="Mark one notification (or all, if no ID is given) as read",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "notification_id": {"type": "integer"},
                    },
                },
            ),
            Tool(
                name="delete_notification",
                description="Delete a notification",
                inputSchema={
                    "type": "object",
                    "properties": {"notification_id": {"type": "integer"}},
                    "required": ["notification_id"],
                },
            ),
            Tool(
                name="update_profile",
                description="Change the user's display name",
                inputSchema={
                    "type": "object",
                    "properties": {"fullname": {"type": "string"}},
                    "required": ["fullname"],
                },
            ),
            Tool(
                name="upload_profile_image",
                description="Upload a local image file as the user's avatar",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "path": {
                            "type": "string",
                            "description": "Path to a PNG or JPEG file",
                        },
                    },
                    "required": ["path"],
                },
            ),
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict) -> list[TextContent]:
        store = client.store
        try:
            if name == "get_session":
                return _text(session_summary(client))

            elif name == "login":
                user = await client.session.login(arguments["email"], arguments["password"])
                return _text(f"Logged in as {user.fullname} ({user.email})")

            elif name == "verify_token":
                await client.session.on_identity_token(arguments["token"])
                return _text(session_summary(client))

            elif name == "check_backend_session":
                await client.session.check_backend_session()
                return _text(session_summary(client))

            elif name == "logout":
                await client.session.logout()
                return _text("Logged out")

            elif name == "get_watchlist":
                if arguments.get("refresh"):
                    await client.fetchers.fetch_watchlist()
                result = [movie_to_dict(m) for m in store.watchlist.values()]
                return _text(result)

            elif name == "add_to_watchlist":
                movie = movie_from_arguments(arguments)
                await client.mutations.add_to_watchlist(movie)
                return _text(f"Added '{movie.title}' to watchlist")

            elif name == "remove_from_watchlist":
                await client.mutations.remove_from_watchlist(arguments["movie_id"])
                return _text("Removed from watchlist")

            elif name == "get_likes":
                return _text(sorted(store.liked))

            elif name == "toggle_like":
                liked = await client.mutations.toggle_like(arguments["movie_id"])
                return _text("Liked" if liked else "Unliked")

            elif name == "get_stats":
                if arguments.get("refresh") or store.stats is None:
                    await client.fetchers.fetch_stats()
                if store.stats is None:
                    return _text("No statistics available")
                result = asdict(store.stats)
                result["stale"] = "stats" in store.stale
                return _text(result)

            elif name == "get_recommendations":
                movies = await client.recommendations.get_recommended(arguments.get("limit", 10))
                if not movies:
                    return _text("No recommendations available yet, try again shortly")
                return _text([movie_to_dict(m) for m in movies])

            elif name == "train_recommendations":
                ok = await client.recommendations.train_models()
                return _text("Training started" if ok else "Training failed")

            elif name == "refresh_user_data":
                await client.bootstrap.refresh_user_data()
                return _text(session_summary(client))

            elif name == "get_comments":
                comments = await client.fetchers.fetch_comments(
                    arguments["movie_id"], force=arguments.get("refresh", False)
                )
                return _text([asdict(c) for c in comments])

            elif name == "add_comment":
                await client.mutations.add_comment(arguments["movie_id"], arguments["text"])
                return _text("Comment posted")

            elif name == "get_notifications":
                notifications = await client.fetchers.fetch_notifications(
                    force=arguments.get("refresh", False)
                )
                return _text([asdict(n) for n in notifications])

            elif name == "mark_notification_read":
                notification_id = arguments.get("notification_id")
                if notification_id is None:
                    await client.mutations.mark_all_notifications_read()
                    return _text("All notifications marked as read")
                await client.mutations.mark_notification_read(notification_id)
                return _text("Notification marked as read")

            elif name == "delete_notification":
                await client.mutations.delete_notification(arguments["notification_id"])
                return _text("Notification deleted")

            elif name == "update_profile":
                user = await client.mutations.update_profile(arguments["fullname"])
                return _text(f"Profile updated: {user.fullname}")

            elif name == "upload_profile_image":
                path = Path(arguments["path"])
                content_type = mimetypes.guess_type(path.name)[0] or "image/jpeg"
                user = await client.mutations.upload_profile_image(
                    path.read_bytes(), path.name, content_type
                )
                return _text(f"Profile image updated: {user.image}")

            else:
                return _text(f"Unknown tool: {name}")

        except MutationInFlightError:
            return _text("Error: a change for this movie is still being saved")
        except Exception as e:
            return _text(f"Error: {str(e)}")

    return server


async def main():
    """Run the MCP server."""
    logging.basicConfig(
        level=logging.INFO,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    client = MovieSyncClient.from_settings(get_settings())
    server = create_mcp_server(client)
    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        await client.close()


if __name__ == "__main__":
    asyncio.run(main())
