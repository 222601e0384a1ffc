"""
Tests for the REST client against an in-process aiohttp server.
"""

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer
from conftest import TEST_TOKEN, message_payload

from room_sync.auth import TokenAuth
from room_sync.client.api import ChatApiClient
from room_sync.core.errors import ApiError

MEMBERSHIP = web.AppKey("membership", list)

ROOM = {
    "id": 1,
    "name": "general",
    "description": "General chat",
    "created_by": 10,
    "created_at": "2025-01-01T12:00:00Z",
    "is_private": False,
    "max_members": 100,
    "current_members": 2,
}


def authorized(handler):
    async def wrapper(request):
        if request.headers.get("Authorization") != f"Bearer {TEST_TOKEN}":
            return web.json_response({"error": "Missing or invalid token"}, status=401)
        return await handler(request)
    return wrapper


@authorized
async def list_rooms(request):
    return web.json_response({"chats": [ROOM], "count": 1})


@authorized
async def search_rooms(request):
    term = request.query.get("search", "")
    chats = [ROOM] if term in ROOM["name"] else None
    return web.json_response({"chats": chats, "count": len(chats or [])})


@authorized
async def history(request):
    room_id = int(request.match_info["room_id"])
    if room_id != 1:
        return web.json_response({"error": "Access denied"}, status=403)
    limit = int(request.query["limit"])
    messages = [message_payload(i, room_id=1) for i in (3, 2, 1)][:limit]
    return web.json_response({"messages": messages, "total": 3, "has_more": limit < 3})


@authorized
async def empty_history(request):
    return web.json_response({"messages": None, "total": 0, "has_more": False})


@authorized
async def create_room(request):
    body = await request.json()
    if not body.get("name"):
        return web.json_response({"error": "Invalid request body"}, status=400)
    room = dict(ROOM, id=5, name=body["name"], is_private=body["is_private"])
    return web.json_response({"chat": room, "message": "Chat created successfully"}, status=201)


@authorized
async def membership(request):
    request.app[MEMBERSHIP].append((request.match_info["action"], int(request.match_info["room_id"])))
    return web.json_response({"message": "ok"})


@pytest.fixture
async def server():
    app = web.Application()
    app[MEMBERSHIP] = []
    app.router.add_get("/chats/", list_rooms)
    app.router.add_post("/chats/", create_room)
    app.router.add_get("/chats/search", search_rooms)
    app.router.add_get("/chats/2/messages", empty_history)
    app.router.add_get("/chats/{room_id}/messages", history)
    app.router.add_post("/chats/{room_id}/{action}", membership)
    async with TestServer(app) as test_server:
        yield test_server


@pytest.fixture
async def api(server):
    async with ChatApiClient(str(server.make_url("/")), TokenAuth(TEST_TOKEN)) as client:
        yield client


class TestChatApiClient:
    """Tests for the REST endpoints the coordinator depends on."""

    async def test_list_rooms(self, api):
        rooms = await api.list_rooms()

        assert [r.name for r in rooms] == ["general"]
        assert rooms[0].current_members == 2

    async def test_search_without_results(self, api):
        assert await api.search_rooms("random") == []

    async def test_fetch_history(self, api):
        page = await api.fetch_history(1, limit=2)

        assert [m.id for m in page.messages] == [3, 2]
        assert [m.id for m in page.chronological()] == [2, 3]
        assert page.has_more

    async def test_fetch_empty_history(self, api):
        page = await api.fetch_history(2)

        assert page.messages == []
        assert not page.has_more

    async def test_error_body_becomes_api_error(self, api):
        with pytest.raises(ApiError) as exc_info:
            await api.fetch_history(9)

        assert exc_info.value.status == 403
        assert "Access denied" in str(exc_info.value)

    async def test_missing_token_is_rejected(self, server):
        async with ChatApiClient(str(server.make_url("/")), TokenAuth(None)) as client:
            with pytest.raises(ApiError) as exc_info:
                await client.list_rooms()

        assert exc_info.value.status == 401

    async def test_create_room(self, api):
        room = await api.create_room("random", is_private=True)

        assert room.id == 5
        assert room.name == "random"
        assert room.is_private

    async def test_join_and_leave(self, api, server):
        await api.join_room(3)
        await api.leave_room(3)

        assert server.app[MEMBERSHIP] == [("join", 3), ("leave", 3)]
