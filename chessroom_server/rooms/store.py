"""
In-memory room store.

Owns the mapping from room id to Room. Rooms live here from their first
``createRoom`` until the reconciler finds them empty.
"""

import logging
from typing import Any

from chessroom_server.rooms.room import Room
from chessroom_server.rooms.rules import ChessRules


logger = logging.getLogger(__name__)


class RoomStore:
    """
    Mapping of room id to Room for one server instance.

    Provides methods for:
    - Creating rooms at the rules engine's initial position
    - Looking rooms up by id or by member
    - Deleting rooms once nobody is left in them
    """

    def __init__(self, rules: ChessRules | None = None):
        # room_id -> Room
        self._rooms: dict[str, Room] = {}
        self._rules = rules or ChessRules()

    @property
    def rules(self) -> ChessRules:
        return self._rules

    def create(self, room_id: str) -> Room:
        """
        Create a fresh room.

        Raises:
            KeyError: a room with this id already exists
        """
        if room_id in self._rooms:
            raise KeyError(f"Room {room_id} already exists")

        room = Room(room_id=room_id, position=self._rules.initial_position())
        self._rooms[room_id] = room
        logger.info(f"Room {room_id} created")
        return room

    def get(self, room_id: str) -> Room | None:
        return self._rooms.get(room_id)

    def delete(self, room_id: str) -> bool:
        """Remove a room. Returns True if it existed."""
        room = self._rooms.pop(room_id, None)
        if room:
            logger.info(f"Room {room_id} deleted after {len(room.move_log)} moves")
        return room is not None

    def delete_if_empty(self, room_id: str) -> bool:
        """Delete a room when both seats and the spectator set are empty."""
        room = self._rooms.get(room_id)
        if room and room.is_empty:
            return self.delete(room_id)
        return False

    def rooms_for_connection(self, connection_id: str) -> list[Room]:
        """All rooms in which the connection holds a seat or spectates."""
        return [room for room in self._rooms.values() if room.is_member(connection_id)]

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def get_stats(self) -> dict[str, Any]:
        """Get room store statistics."""
        rooms = list(self._rooms.values())
        return {
            "total_rooms": len(rooms),
            "ready_rooms": sum(1 for r in rooms if r.is_ready),
            "waiting_rooms": sum(1 for r in rooms if not r.is_ready),
            "finished_rooms": sum(1 for r in rooms if r.status.is_over),
            "total_spectators": sum(r.spectator_count for r in rooms),
            "total_moves": sum(len(r.move_log) for r in rooms),
        }
