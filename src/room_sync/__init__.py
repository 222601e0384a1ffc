"""
Room Sync - realtime synchronization core for a multi-room chat client

Keeps a live websocket connection to the active chat room, merges pushed
messages into ordered per-room histories, keeps the room summary list in step
with the latest activity, and sends messages while the connection is healthy.

Key Features:
- One live connection at a time, bound to the active room
- Automatic reconnection with exponential backoff
- Stale events from superseded connections are discarded
- Append-only per-room message histories
- Observable read model for user interfaces
- Rich terminal-based chat client

Usage:
    from room_sync import ChatApiClient, RoomSessionCoordinator, TokenAuth

    api = ChatApiClient("http://localhost:8080", TokenAuth(token))
    async with RoomSessionCoordinator(
        "ws://localhost:8080", auth_token=token,
        history_loader=api, room_directory=api,
    ) as chat:
        await chat.refresh_rooms()
        chat.select_room(chat.rooms[0])
        chat.send_to_active_room("Hello, World!")
"""

__version__ = "0.1.0"
__author__ = "Room Sync Contributors"
__license__ = "AGPLv3"

# Core imports
from .core import (
    ConnectionState,
    ConnectionStatus,
    EventDispatcher,
    Message,
    MessageStore,
    Room,
    SendError,
    SendResult,
)
from .config import ClientConfig, ReconnectPolicy
from .client.api import ChatApiClient
from .client.coordinator import ReadModel, RoomSessionCoordinator
from .client.transport import TransportSession, WebSocketConnector
from .auth import TokenAuth

__all__ = [
    'ConnectionState',
    'ConnectionStatus',
    'EventDispatcher',
    'Message',
    'MessageStore',
    'Room',
    'SendError',
    'SendResult',
    'ClientConfig',
    'ReconnectPolicy',
    'ChatApiClient',
    'ReadModel',
    'RoomSessionCoordinator',
    'TransportSession',
    'WebSocketConnector',
    'TokenAuth',
]
