"""
Move relay: re-validates proposed moves against the room's own position.

The position a client computes locally is never trusted. The relay replays
the move on the canonical position through the rules engine and keeps
only what the rules engine returns.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from chessroom_server.rooms.room import MoveRecord, Room
from chessroom_server.rooms.rules import ChessRules, MoveVerdict
from chessroom_server.rooms.store import RoomStore


logger = logging.getLogger(__name__)


class MoveStatus(str, Enum):
    """How a move submission ended."""
    APPLIED = "APPLIED"
    ILLEGAL_MOVE = "ILLEGAL_MOVE"
    UNKNOWN_ROOM = "UNKNOWN_ROOM"


@dataclass
class MoveOutcome:
    """Result of a move submission."""
    status: MoveStatus
    room_id: str
    room: Room | None = None
    verdict: MoveVerdict | None = None
    record: MoveRecord | None = None

    @property
    def applied(self) -> bool:
        return self.status == MoveStatus.APPLIED

    @property
    def reason(self) -> str:
        return self.verdict.reason if self.verdict else ""


class MoveRelay:
    """Applies validated moves to rooms, in the order they are submitted."""

    def __init__(self, store: RoomStore, rules: ChessRules | None = None):
        self._store = store
        self._rules = rules or store.rules

    def apply_move(
        self,
        room_id: str,
        connection_id: str,
        proposed_move: Any,
        position_hint: str | None = None
    ) -> MoveOutcome:
        """
        Validate and apply a move.

        Does not check who is moving; that is the caller's policy.

        Args:
            room_id: Room to play in
            connection_id: Connection submitting the move
            proposed_move: Move as received from the client
            position_hint: Position the client believes results; diagnostics only

        Returns:
            MoveOutcome; on APPLIED the room's position and move log are updated
        """
        room = self._store.get(room_id)
        if room is None:
            return MoveOutcome(status=MoveStatus.UNKNOWN_ROOM, room_id=room_id)

        verdict = self._rules.validate(
            room.position,
            proposed_move,
            history=[record.uci for record in room.move_log],
        )
        if not verdict.legal:
            logger.info(f"Rejected move {proposed_move!r} from {connection_id} in {room_id}: {verdict.reason}")
            return MoveOutcome(
                status=MoveStatus.ILLEGAL_MOVE,
                room_id=room_id,
                room=room,
                verdict=verdict,
            )

        record = MoveRecord(
            uci=verdict.uci,
            san=verdict.san,
            mover_id=connection_id,
            position=verdict.position,
        )
        room.move_log.append(record)
        room.position = verdict.position
        room.status = verdict.status
        room.result = verdict.result

        if position_hint and position_hint != verdict.position:
            logger.warning(
                f"Client position for move {verdict.uci} in {room_id} disagrees with "
                f"canonical position; ignoring client copy"
            )

        logger.info(
            f"Room {room_id}: move {len(room.move_log)} {verdict.san} by {connection_id}"
            f"{f' ({verdict.status.value} {verdict.result})' if verdict.status.is_over else ''}"
        )

        return MoveOutcome(
            status=MoveStatus.APPLIED,
            room_id=room_id,
            room=room,
            verdict=verdict,
            record=record,
        )
