"""
Message Synchronization Store

In-memory holder of the room summary list and the ordered per-room message
histories. Histories are append-only from the core's point of view; only
``load_history`` (an explicit reload from the history loader) replaces one
wholesale.

The store is mutated from a single event loop and does no locking.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from .models import Message, Room

logger = logging.getLogger(__name__)


class MessageStore:
    """Room summaries plus per-room message histories"""

    def __init__(self, rooms: Optional[Sequence[Room]] = None):
        self._rooms: Dict[int, Room] = {}
        self._history: Dict[int, List[Message]] = {}
        self.active_room_id: Optional[int] = None
        if rooms:
            self.replace_room_list(rooms)

    @property
    def rooms(self) -> List[Room]:
        """Room summaries in directory order"""
        return list(self._rooms.values())

    def get_room(self, room_id: int) -> Optional[Room]:
        return self._rooms.get(room_id)

    @property
    def active_room(self) -> Optional[Room]:
        if self.active_room_id is None:
            return None
        return self._rooms.get(self.active_room_id)

    def append_message(self, msg: Message) -> None:
        """Append a message to its room's history and update the room preview.

        No deduplication by message id is performed.
        """
        self._history.setdefault(msg.room_id, []).append(msg)

        room = self._rooms.get(msg.room_id)
        if room is not None:
            self._rooms[msg.room_id] = room.with_last_message(msg)

    def replace_room_list(self, rooms: Sequence[Room]) -> None:
        """Replace the summary list, keeping locally known last messages"""
        replaced: Dict[int, Room] = {}
        for room in rooms:
            known = self._rooms.get(room.id)
            if room.last_message is None and known is not None and known.last_message is not None:
                room = room.with_last_message(known.last_message)
            replaced[room.id] = room
        self._rooms = replaced

    def add_room(self, room: Room) -> None:
        """Put a newly created room at the head of the list"""
        rooms = {room.id: room}
        rooms.update((rid, r) for rid, r in self._rooms.items() if rid != room.id)
        self._rooms = rooms

    def remove_room(self, room_id: int) -> None:
        """Drop a room summary and its history"""
        self._rooms.pop(room_id, None)
        self._history.pop(room_id, None)
        if self.active_room_id == room_id:
            self.active_room_id = None
        logger.debug(f"Removed room {room_id} from store")

    def has_history(self, room_id: int) -> bool:
        return room_id in self._history

    def get_history(self, room_id: Optional[int]) -> Tuple[Message, ...]:
        """Read-only view of a room's history; empty if unknown"""
        if room_id is None:
            return ()
        return tuple(self._history.get(room_id, ()))

    def load_history(self, room_id: int, messages: Sequence[Message]) -> None:
        """Replace a room's history with a freshly loaded one"""
        self._history[room_id] = list(messages)
        room = self._rooms.get(room_id)
        if room is not None and messages and room.last_message is None:
            self._rooms[room_id] = room.with_last_message(messages[-1])
