"""Pytest configuration and shared fixtures for testing."""

import asyncio
import json
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

from room_sync.client.coordinator import RoomSessionCoordinator
from room_sync.client.transport import Channel, Connector, TransportSession
from room_sync.config import ReconnectPolicy
from room_sync.core.errors import ABNORMAL_CLOSE_CODE, MANUAL_CLOSE_CODE, ConnectFault
from room_sync.core.events import Closed, Faulted, FrameReceived, Opened
from room_sync.core.models import HistoryPage, Message, Room

# Constants
TEST_TOKEN = "test-token"
BASE_TIME = datetime(2025, 1, 1, 12, 0, 0)
ENDPOINT = "ws://chat.test:8080"


def make_message(message_id: int, room_id: int = 1, content: Optional[str] = None, **kwargs) -> Message:
    """Build a message with predictable defaults."""
    return Message(
        id=message_id,
        room_id=room_id,
        user_id=kwargs.pop("user_id", 10),
        username=kwargs.pop("username", "alice"),
        content=content if content is not None else f"message {message_id}",
        created_at=kwargs.pop("created_at", BASE_TIME + timedelta(seconds=message_id)),
        **kwargs,
    )


def message_payload(message_id: int, room_id: int = 1, content: Optional[str] = None) -> Dict[str, Any]:
    """Wire representation of a message, as the server pushes it."""
    return make_message(message_id, room_id, content).to_dict()


def make_room(room_id: int, name: Optional[str] = None, **kwargs) -> Room:
    return Room(id=room_id, name=name or f"room-{room_id}", **kwargs)


async def settle(rounds: int = 20) -> None:
    """Let background tasks run until they block again."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# --- Transport fakes ---


class FakeChannel(Channel):
    """Channel whose events are pushed by the test."""

    def __init__(self, url: str):
        self.url = url
        self.sent: List[str] = []
        self.closed_with: Optional[tuple] = None
        self._queue: asyncio.Queue = asyncio.Queue()

    async def events(self):
        while True:
            event = await self._queue.get()
            yield event
            if isinstance(event, Closed):
                return

    def send(self, data: str) -> None:
        self.sent.append(data)

    async def close(self, code: int = MANUAL_CLOSE_CODE, reason: str = "") -> None:
        self.closed_with = (code, reason)

    def push(self, event) -> None:
        self._queue.put_nowait(event)

    def open(self) -> None:
        self.push(Opened())

    def deliver(self, payload: Union[Dict[str, Any], str, bytes]) -> None:
        data = json.dumps(payload) if isinstance(payload, dict) else payload
        self.push(FrameReceived(data))

    def drop(self, code: int = ABNORMAL_CLOSE_CODE, reason: str = "") -> None:
        self.push(Closed(code, reason))

    def refuse(self, reason: str = "Connection refused") -> None:
        self.push(Faulted(ConnectFault(reason)))
        self.push(Closed(ABNORMAL_CLOSE_CODE, reason))


class FakeConnector(Connector):
    def __init__(self):
        self.channels: List[FakeChannel] = []

    def open_channel(self, url: str) -> FakeChannel:
        channel = FakeChannel(url)
        self.channels.append(channel)
        return channel

    @property
    def latest(self) -> FakeChannel:
        return self.channels[-1]


class FakeTimer:
    def __init__(self, when: float, callback: Callable[[], None]):
        self.when = when
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Virtual-time scheduler; time only moves on ``advance``."""

    def __init__(self):
        self.now = 0.0
        self.timers: List[FakeTimer] = []
        self.delays: List[float] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        self.delays.append(delay)
        timer = FakeTimer(self.now + delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> List[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds: float) -> None:
        self.now += seconds
        for timer in list(self.timers):
            if not timer.cancelled and not timer.fired and timer.when <= self.now:
                timer.fired = True
                timer.callback()


# --- Collaborator fakes ---


class FakeApi:
    """History loader and room directory backed by in-memory data."""

    def __init__(self, rooms: Optional[List[Room]] = None):
        self.rooms: List[Room] = list(rooms or [])
        self.pages: Dict[int, HistoryPage] = {}
        self.history_calls: List[int] = []
        self.joined: List[int] = []
        self.left: List[int] = []
        self.fail_history = False
        self.fail_leave = False
        self.history_gate: Optional[asyncio.Event] = None

    async def fetch_history(self, room_id: int, limit: int = 50, offset: int = 0) -> HistoryPage:
        self.history_calls.append(room_id)
        if self.history_gate is not None:
            await self.history_gate.wait()
        if self.fail_history:
            raise ConnectionError("history service unavailable")
        return self.pages.get(room_id, HistoryPage())

    async def list_rooms(self) -> List[Room]:
        return list(self.rooms)

    async def join_room(self, room_id: int) -> None:
        self.joined.append(room_id)
        self.rooms.append(make_room(room_id))

    async def leave_room(self, room_id: int) -> None:
        if self.fail_leave:
            raise ConnectionError("leave failed")
        self.left.append(room_id)
        self.rooms = [r for r in self.rooms if r.id != room_id]

    async def create_room(self, name, description=None, is_private=False, max_members=None) -> Room:
        room = make_room(100 + len(self.rooms), name, is_private=is_private)
        self.rooms.insert(0, room)
        return room


# --- Fixtures ---


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def events():
    return []


@pytest.fixture
def session(connector, scheduler, events):
    """Transport session recording every event it forwards."""
    return TransportSession(
        connector,
        ENDPOINT,
        scheduler=scheduler,
        policy=ReconnectPolicy(),
        on_event=events.append,
    )


@pytest.fixture
def api():
    return FakeApi(rooms=[make_room(1), make_room(2)])


@pytest.fixture
def coordinator(connector, scheduler, api):
    return RoomSessionCoordinator(
        ENDPOINT,
        auth_token=TEST_TOKEN,
        connector=connector,
        history_loader=api,
        room_directory=api,
        scheduler=scheduler,
    )
