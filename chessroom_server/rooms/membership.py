"""
Seat and spectator assignment.

Every join path ends in a JoinOutcome. Failures are ordinary outcomes,
never exceptions: the dispatcher turns them into notices for the requester.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from chessroom_server.rooms.room import Room
from chessroom_server.rooms.store import RoomStore
from chessroom_shared.enums import Color, Role


logger = logging.getLogger(__name__)


class JoinStatus(str, Enum):
    """How a join request ended."""
    CREATED = "CREATED"
    JOINED = "JOINED"
    SPECTATING = "SPECTATING"
    ROOM_FULL = "ROOM_FULL"
    ROOM_NOT_FOUND = "ROOM_NOT_FOUND"


@dataclass
class JoinOutcome:
    """Result of a join request."""
    status: JoinStatus
    room_id: str
    room: Room | None = None
    color: Color | None = None
    is_ready: bool = False
    # False when the request left membership untouched (repeat join)
    changed: bool = True
    # True when a spectator was moved into a seat
    promoted: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status in (JoinStatus.CREATED, JoinStatus.JOINED, JoinStatus.SPECTATING)

    @property
    def role(self) -> Role | None:
        if not self.succeeded:
            return None
        return Role.PLAYER if self.color else Role.SPECTATOR

    @classmethod
    def failure(cls, status: JoinStatus, room_id: str) -> "JoinOutcome":
        return cls(status=status, room_id=room_id, changed=False)


class MembershipManager:
    """
    Assigns and revokes player and spectator roles.

    Provides methods for:
    - Creating a room or claiming a named seat
    - Claiming the first open seat
    - Joining as a spectator
    - Revoking whatever role a connection holds
    """

    def __init__(self, store: RoomStore):
        self._store = store

    def create_or_join(self, room_id: str, connection_id: str, color: Color) -> JoinOutcome:
        """
        Create the room if it is unseen, otherwise claim ``color`` in it.

        Returns ROOM_FULL without mutation when the seat is taken.
        """
        room = self._store.get(room_id)

        if room is None:
            room = self._store.create(room_id)
            room.players[color] = connection_id
            logger.info(f"Connection {connection_id} created room {room_id} as {color.value}")
            return JoinOutcome(
                status=JoinStatus.CREATED,
                room_id=room_id,
                room=room,
                color=color,
                is_ready=False,
            )

        current = room.seat_of(connection_id)
        if current is not None:
            if current is color:
                return self._already_seated(room, color)
            logger.info(
                f"Connection {connection_id} already holds {current.value} in {room_id}, "
                f"refusing {color.value}"
            )
            return JoinOutcome.failure(JoinStatus.ROOM_FULL, room_id)

        if room.players[color]:
            logger.info(f"Seat {color.value} in room {room_id} is taken")
            return JoinOutcome.failure(JoinStatus.ROOM_FULL, room_id)

        return self._seat(room, connection_id, color)

    def join_any_open_seat(self, room_id: str, connection_id: str) -> JoinOutcome:
        """Claim the first open seat, white before black."""
        room = self._store.get(room_id)
        if room is None:
            return JoinOutcome.failure(JoinStatus.ROOM_NOT_FOUND, room_id)

        current = room.seat_of(connection_id)
        if current is not None:
            return self._already_seated(room, current)

        open_seats = room.open_seats()
        if not open_seats:
            logger.info(f"Room {room_id} has no open seat for {connection_id}")
            return JoinOutcome.failure(JoinStatus.ROOM_FULL, room_id)

        return self._seat(room, connection_id, open_seats[0])

    def join_as_spectator(self, room_id: str, connection_id: str) -> JoinOutcome:
        """
        Watch a room. Always succeeds when the room exists.

        A seated player keeps the seat; the outcome is then unchanged and
        only serves to resend the snapshot.
        """
        room = self._store.get(room_id)
        if room is None:
            return JoinOutcome.failure(JoinStatus.ROOM_NOT_FOUND, room_id)

        seat = room.seat_of(connection_id)
        if seat is not None:
            return JoinOutcome(
                status=JoinStatus.SPECTATING,
                room_id=room_id,
                room=room,
                color=seat,
                is_ready=room.is_ready,
                changed=False,
            )

        changed = connection_id not in room.spectators
        room.spectators.add(connection_id)
        if changed:
            logger.info(
                f"Connection {connection_id} is spectating room {room_id} "
                f"({room.spectator_count} watching)"
            )

        return JoinOutcome(
            status=JoinStatus.SPECTATING,
            room_id=room_id,
            room=room,
            is_ready=room.is_ready,
            changed=changed,
        )

    def revoke(self, room: Room, connection_id: str) -> tuple[Role | None, Color | None]:
        """
        Remove a connection's role from a room.

        Returns the role and seat that were held, or (None, None).
        """
        seat = room.seat_of(connection_id)
        if seat is not None:
            room.players[seat] = None
            logger.info(f"Seat {seat.value} in room {room.room_id} vacated by {connection_id}")
            return Role.PLAYER, seat

        if connection_id in room.spectators:
            room.spectators.discard(connection_id)
            logger.info(f"Spectator {connection_id} left room {room.room_id}")
            return Role.SPECTATOR, None

        return None, None

    def is_ready(self, room: Room) -> bool:
        """Both seats are occupied."""
        return room.is_ready

    def _seat(self, room: Room, connection_id: str, color: Color) -> JoinOutcome:
        promoted = connection_id in room.spectators
        room.spectators.discard(connection_id)
        room.players[color] = connection_id

        logger.info(
            f"Connection {connection_id} took {color.value} in room {room.room_id}"
            f"{' (was spectating)' if promoted else ''}"
        )

        return JoinOutcome(
            status=JoinStatus.JOINED,
            room_id=room.room_id,
            room=room,
            color=color,
            is_ready=room.is_ready,
            promoted=promoted,
        )

    def _already_seated(self, room: Room, color: Color) -> JoinOutcome:
        return JoinOutcome(
            status=JoinStatus.JOINED,
            room_id=room.room_id,
            room=room,
            color=color,
            is_ready=room.is_ready,
            changed=False,
        )
