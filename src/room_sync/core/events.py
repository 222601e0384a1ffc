"""
Event types for the synchronization core

Two tagged unions flow through the core:

- ``TransportEvent``: what a live channel reports (opened, frame received,
  closed, faulted). Each connection attempt yields exactly one stream of
  these, consumed by a single sequential handler.
- ``DomainEvent``: what the dispatcher decodes a frame into.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union

from .models import Message


@dataclass(frozen=True)
class Opened:
    """Transport handshake completed"""


@dataclass(frozen=True)
class FrameReceived:
    """Raw inbound frame"""

    data: Union[str, bytes]


@dataclass(frozen=True)
class Closed:
    """Connection closed; ``code`` decides whether to reconnect"""

    code: Optional[int]
    reason: str = ""


@dataclass(frozen=True)
class Faulted:
    """Transport-level error; a ``Closed`` event follows"""

    error: Exception


TransportEvent = Union[Opened, FrameReceived, Closed, Faulted]


@dataclass(frozen=True)
class MessageReceived:
    """A message pushed by the server"""

    message: Message

    @property
    def room_id(self) -> int:
        return self.message.room_id


@dataclass(frozen=True)
class ServerNotice:
    """Error notice sent by the server, e.g. a rejected outbound frame"""

    message: str
    time: Optional[datetime] = None
    received_at: datetime = field(default_factory=datetime.now)


DomainEvent = Union[MessageReceived, ServerNotice]
