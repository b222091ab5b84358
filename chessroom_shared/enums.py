"""
Enumerations shared by the server and the client.
"""
from enum import Enum


class Color(str, Enum):
    """Player seats in a room. WHITE is the first seat, BLACK the second."""
    WHITE = "white"
    BLACK = "black"


# Precedence used when a joiner does not pick a seat
SEAT_ORDER: tuple[Color, ...] = (Color.WHITE, Color.BLACK)


class Role(str, Enum):
    """Role a connection holds inside a room."""
    PLAYER = "player"
    SPECTATOR = "spectator"


class GameStatus(str, Enum):
    """Terminal-state verdict reported by the rules engine."""
    ONGOING = "ongoing"
    CHECKMATE = "checkmate"
    STALEMATE = "stalemate"
    DRAW = "draw"

    @property
    def is_over(self) -> bool:
        return self is not GameStatus.ONGOING


class MovePolicy(str, Enum):
    """Who may submit a move for a room."""
    OPEN = "open"        # anyone who knows the room id
    SEATED = "seated"    # any seated player, either side
    TURN = "turn"        # only the player whose color is to move


class MessageType(str, Enum):
    """Types of messages between client and server."""
    # Connection
    CONNECTED = "connected"

    # Membership (client -> server)
    CREATE_ROOM = "createRoom"
    JOIN_ROOM = "joinRoom"
    JOIN_AS_SPECTATOR = "joinAsSpectator"
    LEAVE_ROOM = "leaveRoom"
    REQUEST_SYNC = "requestSync"

    # Play (client -> server)
    MOVE = "move"
    THEME_CHANGE = "themeChange"

    # Room notifications (server -> client)
    PLAYER_JOINED = "playerJoined"
    PLAYER_LEFT = "playerLeft"
    SPECTATOR_JOINED = "spectatorJoined"
    SPECTATOR_LEFT = "spectatorLeft"
    SYNC_GAME_STATE = "syncGameState"
    MOVE_MADE = "moveMade"
    THEME_CHANGED = "themeChanged"

    # Rejections (server -> requester)
    INVALID_MOVE = "invalidMove"
    ROOM_FULL = "roomFull"
    ROOM_NOT_FOUND = "roomNotFound"

    # Errors
    ERROR = "error"
