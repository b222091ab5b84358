"""
Room state: two seats, a spectator set and the canonical position.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from chessroom_shared.enums import Color, GameStatus, Role, SEAT_ORDER


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MoveRecord:
    """One applied move, as accepted by the relay."""
    uci: str
    san: str
    mover_id: str
    position: str  # FEN after the move
    played_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "uci": self.uci,
            "san": self.san,
            "moverId": self.mover_id,
            "position": self.position,
            "playedAt": self.played_at.isoformat(),
        }


@dataclass
class Room:
    """
    A game room.

    A connection holds at most one seat here and is never both seated and
    spectating. ``position`` changes only through the move relay.
    """
    room_id: str
    position: str
    players: dict[Color, str | None] = field(
        default_factory=lambda: {color: None for color in SEAT_ORDER}
    )
    spectators: set[str] = field(default_factory=set)
    move_log: list[MoveRecord] = field(default_factory=list)
    status: GameStatus = GameStatus.ONGOING
    result: str | None = None
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def is_ready(self) -> bool:
        """Both seats are taken."""
        return all(self.players[color] for color in SEAT_ORDER)

    @property
    def is_empty(self) -> bool:
        return not any(self.players.values()) and not self.spectators

    @property
    def spectator_count(self) -> int:
        return len(self.spectators)

    def seat_of(self, connection_id: str) -> Color | None:
        """Color of the seat held by a connection, if any."""
        for color in SEAT_ORDER:
            if self.players[color] == connection_id:
                return color
        return None

    def open_seats(self) -> list[Color]:
        return [color for color in SEAT_ORDER if not self.players[color]]

    def role_of(self, connection_id: str) -> Role | None:
        if self.seat_of(connection_id):
            return Role.PLAYER
        if connection_id in self.spectators:
            return Role.SPECTATOR
        return None

    def is_member(self, connection_id: str) -> bool:
        return self.role_of(connection_id) is not None

    def members(self) -> list[str]:
        """Everyone currently joined: seated players first, then spectators."""
        seated = [self.players[color] for color in SEAT_ORDER if self.players[color]]
        return seated + sorted(self.spectators)

    def players_payload(self) -> dict[str, str | None]:
        return {color.value: self.players[color] for color in SEAT_ORDER}

    def snapshot(self) -> dict[str, Any]:
        """Everything a freshly joined viewer needs to match this room."""
        return {
            "roomId": self.room_id,
            "position": self.position,
            "status": self.status.value,
            "result": self.result,
            "players": self.players_payload(),
            "isReady": self.is_ready,
            "spectatorCount": self.spectator_count,
            "moveCount": len(self.move_log),
        }
