"""
Cleanup for connections that go away.

A departed connection loses every seat and spectator spot it held. Rooms
left without players and without spectators are deleted on the spot.
"""

import logging
from dataclasses import dataclass

from chessroom_server.rooms.membership import MembershipManager
from chessroom_server.rooms.room import Room
from chessroom_server.rooms.store import RoomStore
from chessroom_shared.enums import Color, Role


logger = logging.getLogger(__name__)


@dataclass
class Departure:
    """What a connection's removal did to one room."""
    room_id: str
    connection_id: str
    role: Role
    color: Color | None = None
    spectator_count: int = 0
    room_deleted: bool = False


class DisconnectReconciler:
    """Removes connections from rooms and garbage-collects empty rooms."""

    def __init__(self, store: RoomStore, membership: MembershipManager):
        self._store = store
        self._membership = membership

    def on_disconnect(self, connection_id: str) -> list[Departure]:
        """
        Remove a connection from every room it belongs to.

        Calling this again for the same connection finds nothing and
        returns an empty list.
        """
        departures = []
        for room in self._store.rooms_for_connection(connection_id):
            departure = self._remove(room, connection_id)
            if departure:
                departures.append(departure)

        if departures:
            logger.info(
                f"Reconciled connection {connection_id} out of "
                f"{len(departures)} room(s)"
            )
        return departures

    def release(self, connection_id: str, room_id: str) -> Departure | None:
        """Remove a connection from a single room (explicit leave)."""
        room = self._store.get(room_id)
        if room is None or not room.is_member(connection_id):
            return None
        return self._remove(room, connection_id)

    def _remove(self, room: Room, connection_id: str) -> Departure | None:
        role, color = self._membership.revoke(room, connection_id)
        if role is None:
            return None

        deleted = self._store.delete_if_empty(room.room_id)

        return Departure(
            room_id=room.room_id,
            connection_id=connection_id,
            role=role,
            color=color,
            spectator_count=room.spectator_count,
            room_deleted=deleted,
        )
