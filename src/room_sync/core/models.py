"""
Data model for the room synchronization core

Rooms and messages mirror the chat server's JSON wire format. They are
immutable pydantic models: the store never edits a record in place, it
derives a new one with ``model_copy``.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


MAX_CONTENT_LENGTH = 4000
MESSAGE_TYPES = ("text", "image", "file", "system")


class Message(BaseModel):
    """A single chat message as pushed by the server"""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int = Field(..., description="Message identifier")
    room_id: int = Field(..., alias="chat_id", description="Room the message belongs to")
    user_id: int = Field(..., description="Author identifier")
    username: str = Field("", description="Author display name")
    content: str = Field(..., description="Text payload")
    message_type: str = Field(default="text", description="Message type tag")
    reply_to_id: Optional[int] = Field(None, description="Message this one replies to")
    created_at: datetime = Field(..., description="Server timestamp")

    def to_dict(self) -> Dict[str, Any]:
        """Convert message to its wire representation"""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Message':
        """Create message from its wire representation"""
        return cls.model_validate(data)


class Room(BaseModel):
    """Room summary as listed by the room directory"""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    is_private: bool = False
    max_members: int = 100
    current_members: int = 0
    last_message: Optional[Message] = None

    def with_last_message(self, message: Optional[Message]) -> 'Room':
        return self.model_copy(update={"last_message": message})


class OutboundFrame(BaseModel):
    """Frame written to the transport when the user sends a message"""

    content: str
    message_type: str = "text"
    reply_to_id: Optional[int] = None

    @field_validator('content')
    @classmethod
    def validate_content(cls, v):
        """Reject blank or oversized content"""
        if not v or not v.strip():
            raise ValueError("Message content cannot be empty")
        # the server limit counts UTF-8 bytes
        if len(v.encode("utf-8")) > MAX_CONTENT_LENGTH:
            raise ValueError("Message content too long")
        return v

    @field_validator('message_type')
    @classmethod
    def validate_message_type(cls, v):
        if v not in MESSAGE_TYPES:
            raise ValueError(f"Invalid message type: {v}")
        return v

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)


class HistoryPage(BaseModel):
    """One page of room history returned by the history loader"""

    messages: List[Message] = Field(default_factory=list)
    total: int = 0
    has_more: bool = False

    @field_validator('messages', mode='before')
    @classmethod
    def default_messages(cls, v):
        # the server encodes an empty page as null
        return v or []

    def chronological(self) -> List[Message]:
        """Messages oldest-first (the server pages newest-first)"""
        return list(reversed(self.messages))


class ConnectionStatus(str, Enum):
    """Lifecycle status of the transport session"""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


@dataclass
class ConnectionState:
    """Connection state for the active room.

    Attributes:
        status: Current lifecycle status.
        room_id: Room the session is bound to, if any.
        reconnect_attempt: Consecutive failed cycles, reset on a successful open.
        last_error: Most recent fault record, if any.
    """

    status: ConnectionStatus = ConnectionStatus.IDLE
    room_id: Optional[int] = None
    reconnect_attempt: int = 0
    last_error: Optional[Exception] = None

    @property
    def is_open(self) -> bool:
        return self.status == ConnectionStatus.OPEN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "room_id": self.room_id,
            "connected": self.is_open,
            "reconnect_attempt": self.reconnect_attempt,
            "last_error": str(self.last_error) if self.last_error else None,
        }
