"""
Room Session Coordinator

Top-level owner of the synchronization core. It tracks the active room,
keeps the transport session bound to it, feeds inbound frames through the
dispatcher into the store, triggers the one-time history load for a room,
and publishes a read model to subscribers after every change.
"""

import asyncio
import logging
from dataclasses import dataclass
from types import TracebackType
from typing import Callable, Dict, List, Optional, Protocol, Set, Tuple, Union

from pydantic import ValidationError

from ..config import ClientConfig, ReconnectPolicy
from ..core.dispatcher import EventDispatcher
from ..core.errors import SendError, SendResult
from ..core.events import FrameReceived, ServerNotice, TransportEvent
from ..core.models import (
    ConnectionState,
    ConnectionStatus,
    HistoryPage,
    Message,
    OutboundFrame,
    Room,
)
from ..core.store import MessageStore
from .scheduler import Scheduler
from .transport import Connector, TransportSession, WebSocketConnector

logger = logging.getLogger(__name__)


class HistoryLoader(Protocol):
    async def fetch_history(self, room_id: int, limit: int = 50, offset: int = 0) -> HistoryPage: ...


class RoomDirectory(Protocol):
    async def list_rooms(self) -> List[Room]: ...

    async def join_room(self, room_id: int) -> None: ...

    async def leave_room(self, room_id: int) -> None: ...

    async def create_room(
        self,
        name: str,
        description: Optional[str] = None,
        is_private: bool = False,
        max_members: Optional[int] = None,
    ) -> Room: ...


@dataclass(frozen=True)
class ReadModel:
    """Snapshot of what consumers render"""

    active_room: Optional[Room]
    rooms: Tuple[Room, ...]
    messages: Tuple[Message, ...]
    status: ConnectionStatus
    reconnect_attempt: int = 0
    last_error: Optional[Exception] = None
    last_notice: Optional[ServerNotice] = None

    @property
    def is_connected(self) -> bool:
        return self.status == ConnectionStatus.OPEN

    @property
    def has_failed(self) -> bool:
        """Reconnection gave up; the user has to retry"""
        return self.status == ConnectionStatus.FAILED


Subscriber = Callable[[ReadModel], None]


class RoomSessionCoordinator:
    """
    Binds the transport session to the active room.

    Usage:
        api = ChatApiClient(config.server_url, TokenAuth(token))
        async with RoomSessionCoordinator(
            endpoint=config.websocket_url,
            auth_token=token,
            history_loader=api,
            room_directory=api,
        ) as chat:
            await chat.refresh_rooms()
            chat.select_room(chat.rooms[0])
            chat.subscribe(render)
            chat.send_to_active_room("Hello")
    """

    def __init__(
        self,
        endpoint: str,
        auth_token: Optional[str] = None,
        connector: Optional[Connector] = None,
        store: Optional[MessageStore] = None,
        history_loader: Optional[HistoryLoader] = None,
        room_directory: Optional[RoomDirectory] = None,
        scheduler: Optional[Scheduler] = None,
        policy: Optional[ReconnectPolicy] = None,
        history_limit: int = 50,
    ) -> None:
        self.auth_token = auth_token
        self.store = store or MessageStore()
        self.dispatcher = EventDispatcher(self.store)
        self.history_loader = history_loader
        self.room_directory = room_directory
        self.history_limit = history_limit
        self.transport = TransportSession(
            connector or WebSocketConnector(),
            endpoint,
            scheduler=scheduler,
            policy=policy,
            on_event=self._handle_transport_event,
            on_status=self._handle_status,
        )

        self.last_notice: Optional[ServerNotice] = None
        self._subscribers: List[Subscriber] = []
        self._history_requested: Set[int] = set()
        self._history_tasks: Dict[int, asyncio.Task] = {}

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        history_loader: Optional[HistoryLoader] = None,
        room_directory: Optional[RoomDirectory] = None,
    ) -> "RoomSessionCoordinator":
        return cls(
            endpoint=config.websocket_url,
            auth_token=config.token,
            connector=WebSocketConnector(heartbeat=config.heartbeat),
            history_loader=history_loader,
            room_directory=room_directory,
            policy=config.reconnect,
            history_limit=config.history_limit,
        )

    async def __aenter__(self) -> "RoomSessionCoordinator":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        await self.aclose()

    # Read model

    @property
    def active_room_id(self) -> Optional[int]:
        return self.store.active_room_id

    @property
    def active_room(self) -> Optional[Room]:
        return self.store.active_room

    @property
    def rooms(self) -> List[Room]:
        return self.store.rooms

    @property
    def messages(self) -> Tuple[Message, ...]:
        """History of the active room"""
        return self.store.get_history(self.store.active_room_id)

    @property
    def connection(self) -> ConnectionState:
        return self.transport.state

    @property
    def is_connected(self) -> bool:
        return self.transport.is_open

    def snapshot(self) -> ReadModel:
        state = self.transport.state
        return ReadModel(
            active_room=self.active_room,
            rooms=tuple(self.store.rooms),
            messages=self.messages,
            status=state.status,
            reconnect_attempt=state.reconnect_attempt,
            last_error=state.last_error,
            last_notice=self.last_notice,
        )

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Call ``callback`` with a fresh snapshot after every change"""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        if not self._subscribers:
            return
        model = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(model)
            except Exception:
                logger.exception("Read model subscriber failed")

    # Room selection

    def select_room(self, room: Union[Room, int, None], auth_token: Optional[str] = None) -> None:
        """Make ``room`` the active room and connect to it.

        Passing None clears the active room and closes the transport.
        """
        if room is None:
            self.store.active_room_id = None
            self.transport.close("No active room")
            self._notify()
            return

        room_id = room.id if isinstance(room, Room) else room
        if isinstance(room, Room) and self.store.get_room(room_id) is None:
            self.store.add_room(room)

        token = auth_token or self.auth_token
        if auth_token:
            self.auth_token = auth_token

        already_live = (
            self.store.active_room_id == room_id
            and self.transport.room_id == room_id
            and self.transport.is_live
        )
        self.store.active_room_id = room_id
        if not already_live:
            if self.transport.is_live and self.transport.room_id != room_id:
                # open() is a no-op without a room id and token
                self.transport.close("superseded")
            self.transport.open(room_id, token)

        if not self.store.has_history(room_id):
            self._request_history(room_id)

        self._notify()

    def _request_history(self, room_id: int) -> None:
        if self.history_loader is None or room_id in self._history_requested:
            return
        self._history_requested.add(room_id)
        task = asyncio.get_running_loop().create_task(self._load_history(room_id))
        self._history_tasks[room_id] = task

        def discard(done: asyncio.Task) -> None:
            if self._history_tasks.get(room_id) is done:
                del self._history_tasks[room_id]

        task.add_done_callback(discard)

    async def _load_history(self, room_id: int) -> None:
        try:
            page = await self.history_loader.fetch_history(room_id, limit=self.history_limit)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Failed to load history for room {room_id}: {e}")
            return

        if room_id not in self._history_requested:
            # left the room while the request was in flight
            return

        loaded = page.chronological()
        loaded_ids = {m.id for m in loaded}
        live = [m for m in self.store.get_history(room_id) if m.id not in loaded_ids]
        self.store.load_history(room_id, loaded + live)
        logger.debug(f"Loaded {len(loaded)} messages for room {room_id}")
        self._notify()

    def _forget_room(self, room_id: int) -> None:
        self._history_requested.discard(room_id)
        task = self._history_tasks.pop(room_id, None)
        if task is not None:
            task.cancel()

    # Sending

    def send_to_active_room(
        self,
        content: str,
        message_type: str = "text",
        reply_to_id: Optional[int] = None,
    ) -> SendResult:
        """Send a message to the active room over the live transport"""
        if self.store.active_room_id is None:
            return SendResult.failed(SendError.NO_ACTIVE_ROOM, "No active room")
        if not self.transport.is_open or self.transport.room_id != self.store.active_room_id:
            return SendResult.failed(SendError.NOT_CONNECTED, "Not connected to the room")

        try:
            frame = OutboundFrame(
                content=content, message_type=message_type, reply_to_id=reply_to_id
            )
        except ValidationError as e:
            return SendResult.failed(SendError.INVALID_MESSAGE, str(e))

        if not self.transport.send(frame):
            return SendResult.failed(SendError.NOT_CONNECTED, "Not connected to the room")
        return SendResult.ok()

    # Room directory

    async def refresh_rooms(self) -> bool:
        """Reload the room list from the room directory"""
        if self.room_directory is None:
            return False
        try:
            rooms = await self.room_directory.list_rooms()
        except Exception as e:
            logger.warning(f"Failed to load rooms: {e}")
            return False
        self.store.replace_room_list(rooms)
        self._notify()
        return True

    async def join_room(self, room_id: int) -> bool:
        if self.room_directory is None:
            return False
        try:
            await self.room_directory.join_room(room_id)
        except Exception as e:
            logger.warning(f"Failed to join room {room_id}: {e}")
            return False
        return await self.refresh_rooms()

    async def leave_room(self, room_id: Optional[int] = None) -> bool:
        """Leave a room; leaving the active room also closes the transport"""
        room_id = room_id if room_id is not None else self.store.active_room_id
        if room_id is None:
            return True

        if self.room_directory is not None:
            try:
                await self.room_directory.leave_room(room_id)
            except Exception as e:
                logger.warning(f"Failed to leave room {room_id}: {e}")
                return False

        self.remove_room(room_id)
        return True

    def remove_room(self, room_id: int) -> None:
        """Drop a room locally, closing the transport if it was active"""
        if self.store.active_room_id == room_id or self.transport.room_id == room_id:
            self.transport.close("Left room")
        self._forget_room(room_id)
        self.store.remove_room(room_id)
        self._notify()

    async def create_room(
        self,
        name: str,
        description: Optional[str] = None,
        is_private: bool = False,
        max_members: Optional[int] = None,
    ) -> Optional[Room]:
        """Create a room, list it first and make it active"""
        if self.room_directory is None:
            return None
        try:
            room = await self.room_directory.create_room(
                name, description=description, is_private=is_private, max_members=max_members
            )
        except Exception as e:
            logger.warning(f"Failed to create room {name!r}: {e}")
            return None
        self.store.add_room(room)
        self.select_room(room)
        return room

    # Transport callbacks

    def _handle_transport_event(self, event: TransportEvent) -> None:
        if isinstance(event, FrameReceived):
            decoded = self.dispatcher.dispatch(event.data)
            if decoded is None:
                return
            if isinstance(decoded, ServerNotice):
                self.last_notice = decoded
        self._notify()

    def _handle_status(self, state: ConnectionState) -> None:
        self._notify()

    # Teardown

    async def aclose(self) -> None:
        """Stop history loads, close the transport and wait for teardown"""
        for room_id in list(self._history_tasks):
            self._forget_room(room_id)
        self.transport.close("Session closed")
        await self.transport.wait_closed()
        self._subscribers.clear()
