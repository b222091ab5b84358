"""
Message protocol for client-server communication.

All messages are JSON objects with a "type" field and optional "data" field.
Field names inside "data" are camelCase on the wire.
"""

from dataclasses import dataclass, field
from typing import Any
import json

from chessroom_shared.enums import MessageType


@dataclass
class Message:
    """Base message structure for all client-server communication."""
    type: MessageType
    data: dict[str, Any] = field(default_factory=dict)
    request_id: str | None = None  # Optional, for matching requests to responses

    def to_json(self) -> str:
        """Serialize message to JSON string."""
        return json.dumps(self.to_dict())

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "type": self.type.value,
            "data": self.data,
            "request_id": self.request_id,
        }

    @classmethod
    def from_json(cls, json_str: str) -> "Message":
        """Deserialize message from JSON string."""
        raw = json.loads(json_str)
        return cls.from_dict(raw)

    @classmethod
    def from_dict(cls, raw: dict) -> "Message":
        """
        Create message from dictionary.

        Raises:
            ValueError: unknown message type
            TypeError: payload is not an object
            KeyError: "type" is missing
        """
        if not isinstance(raw, dict):
            raise TypeError("message must be a JSON object")
        data = raw.get("data") or {}
        if not isinstance(data, dict):
            raise TypeError("message data must be a JSON object")
        return cls(
            type=MessageType(raw["type"]),
            data=data,
            request_id=raw.get("request_id"),
        )


@dataclass
class ErrorMessage(Message):
    """Error response message."""
    type: MessageType = MessageType.ERROR

    @classmethod
    def create(cls, message: str, code: str = "ERROR", request_id: str | None = None) -> "ErrorMessage":
        """Create an error message."""
        return cls(
            data={"message": message, "code": code},
            request_id=request_id,
        )


@dataclass
class ConnectedMessage(Message):
    """Handshake acknowledgment carrying the transient connection handle."""
    type: MessageType = MessageType.CONNECTED

    @classmethod
    def create(cls, connection_id: str) -> "ConnectedMessage":
        return cls(data={"connectionId": connection_id})


# =============================================================================
# Membership Requests (Client -> Server)
# =============================================================================

@dataclass
class CreateRoomRequest(Message):
    """Create a room, or take the named seat in an existing one."""
    type: MessageType = MessageType.CREATE_ROOM

    @classmethod
    def create(cls, room_id: str, color: str, request_id: str | None = None) -> "CreateRoomRequest":
        return cls(data={"roomId": room_id, "color": color}, request_id=request_id)


@dataclass
class JoinRoomRequest(Message):
    """Take the first open seat in an existing room."""
    type: MessageType = MessageType.JOIN_ROOM

    @classmethod
    def create(cls, room_id: str, request_id: str | None = None) -> "JoinRoomRequest":
        return cls(data={"roomId": room_id}, request_id=request_id)


@dataclass
class JoinAsSpectatorRequest(Message):
    """Watch an existing room."""
    type: MessageType = MessageType.JOIN_AS_SPECTATOR

    @classmethod
    def create(cls, room_id: str, request_id: str | None = None) -> "JoinAsSpectatorRequest":
        return cls(data={"roomId": room_id}, request_id=request_id)


@dataclass
class LeaveRoomRequest(Message):
    """Give up any role held in a room."""
    type: MessageType = MessageType.LEAVE_ROOM

    @classmethod
    def create(cls, room_id: str, request_id: str | None = None) -> "LeaveRoomRequest":
        return cls(data={"roomId": room_id}, request_id=request_id)


@dataclass
class RequestSyncRequest(Message):
    """Ask for a fresh snapshot of a room the sender belongs to."""
    type: MessageType = MessageType.REQUEST_SYNC

    @classmethod
    def create(cls, room_id: str, request_id: str | None = None) -> "RequestSyncRequest":
        return cls(data={"roomId": room_id}, request_id=request_id)


# =============================================================================
# Play Requests (Client -> Server)
# =============================================================================

@dataclass
class MoveRequest(Message):
    """
    Submit a move.

    ``game_state`` is the position the client computed locally. The server
    only uses it for diagnostics and always derives the position itself.
    """
    type: MessageType = MessageType.MOVE

    @classmethod
    def create(
        cls,
        room_id: str,
        from_square: str,
        to_square: str,
        promotion: str | None = None,
        game_state: str | None = None,
        request_id: str | None = None
    ) -> "MoveRequest":
        move = {"from": from_square, "to": to_square}
        if promotion:
            move["promotion"] = promotion
        data: dict[str, Any] = {"roomId": room_id, "move": move}
        if game_state:
            data["gameState"] = game_state
        return cls(data=data, request_id=request_id)


@dataclass
class ThemeChangeRequest(Message):
    """Share an appearance preference with the rest of the room."""
    type: MessageType = MessageType.THEME_CHANGE

    @classmethod
    def create(cls, room_id: str, theme: Any, request_id: str | None = None) -> "ThemeChangeRequest":
        return cls(data={"roomId": room_id, "theme": theme}, request_id=request_id)


# =============================================================================
# Server Notifications (Server -> Client)
# =============================================================================

@dataclass
class PlayerJoinedMessage(Message):
    """Broadcast when a seat is taken."""
    type: MessageType = MessageType.PLAYER_JOINED

    @classmethod
    def create(cls, room_id: str, color: str, players: dict, is_ready: bool) -> "PlayerJoinedMessage":
        return cls(data={
            "roomId": room_id,
            "color": color,
            "players": players,
            "isReady": is_ready,
        })


@dataclass
class PlayerLeftMessage(Message):
    """Broadcast when a seat is vacated. Carries no payload beyond the room."""
    type: MessageType = MessageType.PLAYER_LEFT

    @classmethod
    def create(cls, room_id: str) -> "PlayerLeftMessage":
        return cls(data={"roomId": room_id})


@dataclass
class SpectatorJoinedMessage(Message):
    """Broadcast with the new spectator count after a spectator joins."""
    type: MessageType = MessageType.SPECTATOR_JOINED

    @classmethod
    def create(cls, room_id: str, count: int) -> "SpectatorJoinedMessage":
        return cls(data={"roomId": room_id, "count": count})


@dataclass
class SpectatorLeftMessage(Message):
    """Broadcast with the new spectator count after a spectator leaves."""
    type: MessageType = MessageType.SPECTATOR_LEFT

    @classmethod
    def create(cls, room_id: str, count: int) -> "SpectatorLeftMessage":
        return cls(data={"roomId": room_id, "count": count})


@dataclass
class SyncGameStateMessage(Message):
    """Full room snapshot sent to a single connection."""
    type: MessageType = MessageType.SYNC_GAME_STATE

    @classmethod
    def create(cls, snapshot: dict, request_id: str | None = None) -> "SyncGameStateMessage":
        return cls(data=snapshot, request_id=request_id)


@dataclass
class MoveMadeMessage(Message):
    """Canonical move broadcast to everyone in the room except the mover."""
    type: MessageType = MessageType.MOVE_MADE

    @classmethod
    def create(
        cls,
        room_id: str,
        move: dict,
        position: str,
        status: str,
        result: str | None = None
    ) -> "MoveMadeMessage":
        return cls(data={
            "roomId": room_id,
            "move": move,
            "position": position,
            "status": status,
            "result": result,
        })


@dataclass
class InvalidMoveMessage(Message):
    """Rejection sent to the mover only."""
    type: MessageType = MessageType.INVALID_MOVE

    @classmethod
    def create(cls, room_id: str, reason: str = "", request_id: str | None = None) -> "InvalidMoveMessage":
        return cls(data={"roomId": room_id, "reason": reason}, request_id=request_id)


@dataclass
class RoomFullMessage(Message):
    """Join rejection: no seat available."""
    type: MessageType = MessageType.ROOM_FULL

    @classmethod
    def create(cls, room_id: str, request_id: str | None = None) -> "RoomFullMessage":
        return cls(data={"roomId": room_id}, request_id=request_id)


@dataclass
class RoomNotFoundMessage(Message):
    """Join rejection: no such room."""
    type: MessageType = MessageType.ROOM_NOT_FOUND

    @classmethod
    def create(cls, room_id: str, request_id: str | None = None) -> "RoomNotFoundMessage":
        return cls(data={"roomId": room_id}, request_id=request_id)


@dataclass
class ThemeChangedMessage(Message):
    """Theme preference relayed to the rest of the room."""
    type: MessageType = MessageType.THEME_CHANGED

    @classmethod
    def create(cls, room_id: str, theme: Any) -> "ThemeChangedMessage":
        return cls(data={"roomId": room_id, "theme": theme})


def parse_message(json_str: str) -> Message:
    """
    Parse a JSON string into a Message.

    Returns the base Message class; the message handler uses the type
    field to decide how to process it.
    """
    return Message.from_json(json_str)
