"""
Event Dispatcher

Decodes inbound transport frames into domain events and applies them to the
store. A malformed frame is logged and dropped; it never affects the
connection or the frames that follow it.
"""

import json
import logging
from datetime import datetime
from typing import Optional, Union

from pydantic import ValidationError

from .errors import DecodeFault
from .events import DomainEvent, MessageReceived, ServerNotice
from .models import Message
from .store import MessageStore

logger = logging.getLogger(__name__)


def decode(raw: Union[str, bytes]) -> DomainEvent:
    """Decode a raw frame, raising DecodeFault if it is malformed"""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeFault(f"Frame is not valid UTF-8: {e}", raw) from e

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise DecodeFault(f"Frame is not valid JSON: {e}", raw) from e

    if not isinstance(payload, dict):
        raise DecodeFault("Frame is not a JSON object", raw)

    if payload.get("type") == "error":
        return ServerNotice(
            message=str(payload.get("message", "")),
            time=_parse_time(payload.get("time")),
        )

    try:
        return MessageReceived(Message.model_validate(payload))
    except ValidationError as e:
        raise DecodeFault(f"Frame is not a valid message: {e}", raw) from e


def _parse_time(value) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class EventDispatcher:
    """Routes decoded frames into the message store"""

    def __init__(self, store: MessageStore):
        self.store = store
        self.dropped_frames = 0

    def dispatch(self, raw: Union[str, bytes]) -> Optional[DomainEvent]:
        """Decode and apply a frame; returns None when the frame was dropped"""
        try:
            event = decode(raw)
        except DecodeFault as e:
            self.dropped_frames += 1
            logger.warning(f"Dropping malformed frame: {e}")
            return None

        if isinstance(event, MessageReceived):
            self.store.append_message(event.message)
        elif isinstance(event, ServerNotice):
            logger.warning(f"Server notice: {event.message}")

        return event
