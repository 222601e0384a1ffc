"""
Room Sync Core Module

This module contains the transport-independent core including:
- Room and message models
- Fault taxonomy
- Transport and domain events
- Event dispatcher (frame decoding)
- Message synchronization store
"""

from .models import Message, Room, OutboundFrame, HistoryPage, ConnectionState, ConnectionStatus
from .errors import SyncError, SendError, SendResult
from .events import MessageReceived, ServerNotice
from .dispatcher import EventDispatcher, decode
from .store import MessageStore

__all__ = [
    'Message',
    'Room',
    'OutboundFrame',
    'HistoryPage',
    'ConnectionState',
    'ConnectionStatus',
    'SyncError',
    'SendError',
    'SendResult',
    'MessageReceived',
    'ServerNotice',
    'EventDispatcher',
    'decode',
    'MessageStore'
]
