"""
REST client for the chat server

Provides the two collaborators the coordinator calls into: the history
loader (``fetch_history``) and the room directory (list/join/leave/create).
"""

import logging
from types import TracebackType
from typing import Any, Dict, List, Optional

import aiohttp

from ..auth import TokenAuth
from ..core.errors import ApiError
from ..core.models import HistoryPage, Room

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


class ChatApiClient:
    """
    Thin aiohttp wrapper over the chat server's REST endpoints.

    Usage:
        async with ChatApiClient("http://localhost:8080", TokenAuth(token)) as api:
            rooms = await api.list_rooms()
            page = await api.fetch_history(rooms[0].id)
    """

    def __init__(self, base_url: str, auth: TokenAuth, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.base_url = base_url.rstrip("/")
        self.auth = auth
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "ChatApiClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        session = self._get_session()
        async with session.request(
            method, url, params=params, json=json, headers=self.auth.headers()
        ) as response:
            try:
                data = await response.json(content_type=None)
            except ValueError:
                data = None

            if response.status >= 400:
                message = response.reason or "Request failed"
                if isinstance(data, dict) and data.get("error"):
                    message = str(data["error"])
                logger.warning(f"{method} {path} failed: {response.status} {message}")
                raise ApiError(response.status, message)

            return data if isinstance(data, dict) else {}

    async def list_rooms(self) -> List[Room]:
        """Rooms the user is a member of"""
        data = await self._request("GET", "/chats/")
        return [Room.model_validate(item) for item in data.get("chats") or []]

    async def search_rooms(self, term: str = "", limit: int = 20, offset: int = 0) -> List[Room]:
        """Public rooms matching a search term"""
        data = await self._request(
            "GET", "/chats/search", params={"search": term, "limit": limit, "offset": offset}
        )
        return [Room.model_validate(item) for item in data.get("chats") or []]

    async def fetch_history(self, room_id: int, limit: int = 50, offset: int = 0) -> HistoryPage:
        """One page of a room's history, newest first"""
        data = await self._request(
            "GET", f"/chats/{room_id}/messages", params={"limit": limit, "offset": offset}
        )
        return HistoryPage.model_validate(data)

    async def join_room(self, room_id: int) -> None:
        await self._request("POST", f"/chats/{room_id}/join")

    async def leave_room(self, room_id: int) -> None:
        await self._request("POST", f"/chats/{room_id}/leave")

    async def create_room(
        self,
        name: str,
        description: Optional[str] = None,
        is_private: bool = False,
        max_members: Optional[int] = None,
    ) -> Room:
        """Create a room; the creator becomes its first member"""
        payload: Dict[str, Any] = {"name": name, "is_private": is_private}
        if description:
            payload["description"] = description
        if max_members:
            payload["max_members"] = max_members
        data = await self._request("POST", "/chats/", json=payload)
        return Room.model_validate(data.get("chat") or {})
