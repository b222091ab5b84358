"""
WebSocket client for connecting to the chess room server.

Keeps a local mirror of one room (board, seats, spectators, theme) that
follows the server's notifications, and re-joins the room after a dropped
connection.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Optional

import chess
import websockets
from websockets.asyncio.client import ClientConnection, connect

from chessroom_client.config import ClientSettings, settings as default_settings
from chessroom_shared.board import board_status, build_move
from chessroom_shared.enums import Color, GameStatus, MessageType, Role
from chessroom_shared.protocol import (
    Message,
    CreateRoomRequest,
    JoinAsSpectatorRequest,
    JoinRoomRequest,
    LeaveRoomRequest,
    MoveRequest,
    RequestSyncRequest,
    ThemeChangeRequest,
)


logger = logging.getLogger(__name__)

# Unclaimed messages kept per event type for wait_for()
_MAX_PENDING_PER_TYPE = 100


class ConnectionState(Enum):
    """Connection state."""
    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    RECONNECTING = auto()
    FAILED = auto()


@dataclass
class RoomView:
    """What this client currently believes about its room."""
    room_id: Optional[str] = None
    role: Optional[Role] = None
    color: Optional[Color] = None
    board: chess.Board = field(default_factory=chess.Board)
    players: dict[str, Optional[str]] = field(default_factory=dict)
    is_ready: bool = False
    spectator_count: int = 0
    status: GameStatus = GameStatus.ONGOING
    result: Optional[str] = None
    theme: Any = None
    opponent_left: bool = False
    # Set once the server has sent a snapshot for this room
    joined: bool = False

    @property
    def position(self) -> str:
        return self.board.fen()

    @property
    def side_to_move(self) -> Color:
        return Color.WHITE if self.board.turn == chess.WHITE else Color.BLACK

    @property
    def can_move(self) -> bool:
        """Seated, and it is this seat's turn."""
        return (
            self.role == Role.PLAYER
            and self.color == self.side_to_move
            and not self.status.is_over
        )

    def reset(self) -> None:
        self.room_id = None
        self.role = None
        self.color = None
        self.board = chess.Board()
        self.players = {}
        self.is_ready = False
        self.spectator_count = 0
        self.status = GameStatus.ONGOING
        self.result = None
        self.opponent_left = False
        self.joined = False


class RoomClient:
    """
    WebSocket client for chess room server communication.

    Register callbacks with ``on(event_type, callback)``; each callback gets
    the message's data dict after the local view has been updated. Callbacks
    may be plain functions or coroutines.
    """

    def __init__(self, url: Optional[str] = None, client_settings: Optional[ClientSettings] = None):
        self._settings = client_settings or default_settings
        self._url = url or self._settings.server_url

        self._websocket: Optional[ClientConnection] = None
        self._state = ConnectionState.DISCONNECTED
        self._connection_id: Optional[str] = None

        self._receive_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._should_reconnect = True

        self._callbacks: dict[str, list[Callable[[dict], Any]]] = {}
        self._pending: dict[str, asyncio.Queue] = {}

        self.view = RoomView()
        self.last_error: Optional[str] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connection_id(self) -> Optional[str]:
        return self._connection_id

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    def on(self, event_type: MessageType | str, callback: Callable[[dict], Any]) -> None:
        """Register a callback for a server event (or "clientError")."""
        key = event_type.value if isinstance(event_type, MessageType) else event_type
        self._callbacks.setdefault(key, []).append(callback)

    # =========================================================================
    # Connection
    # =========================================================================

    async def connect(self) -> bool:
        """
        Connect to the server.

        Returns:
            True if connection successful
        """
        if self._state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            return self._state == ConnectionState.CONNECTED

        self._should_reconnect = True
        return await self._do_connect()

    async def _do_connect(self) -> bool:
        """Perform the actual connection."""
        self._state = ConnectionState.CONNECTING

        try:
            self._websocket = await connect(self._url)

            # The server speaks first with our connection handle
            raw = await asyncio.wait_for(self._websocket.recv(), timeout=self._settings.connect_timeout)
            data = json.loads(raw)

            if data.get("type") != MessageType.CONNECTED.value:
                await self._report_error(f"Unexpected handshake: {data.get('type')}")
                await self._websocket.close()
                self._state = ConnectionState.FAILED
                return False

            self._connection_id = data.get("data", {}).get("connectionId")
            self._state = ConnectionState.CONNECTED

            # Start receive loop
            self._receive_task = asyncio.create_task(self._receive_loop())

            logger.info(f"Connected to {self._url} as {self._connection_id}")
            return True

        except asyncio.TimeoutError:
            await self._report_error("Connection timeout")
            self._state = ConnectionState.FAILED
            return False
        except (OSError, websockets.WebSocketException, json.JSONDecodeError) as e:
            logger.warning(f"Connection failed: {e}")
            await self._report_error(f"Connection failed: {e}")
            self._state = ConnectionState.FAILED
            return False

    async def disconnect(self) -> None:
        """Disconnect from the server."""
        self._should_reconnect = False

        if self._reconnect_task:
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
            self._reconnect_task = None

        if self._websocket:
            await self._websocket.close()

        if self._receive_task:
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
            self._receive_task = None

        self._websocket = None
        self._connection_id = None
        self._state = ConnectionState.DISCONNECTED
        logger.info("Disconnected from server")

    async def _receive_loop(self) -> None:
        """Receive messages from server."""
        try:
            async for raw_message in self._websocket:
                try:
                    data = json.loads(raw_message)
                except json.JSONDecodeError as e:
                    logger.error(f"Failed to parse message: {e}")
                    continue
                await self._handle_message(data)

        except websockets.ConnectionClosed:
            logger.info("Connection closed by server")
        finally:
            self._connection_id = None
            if self._should_reconnect:
                self._reconnect_task = asyncio.create_task(self._reconnect())
            else:
                self._state = ConnectionState.DISCONNECTED

    async def _reconnect(self) -> None:
        """Reconnect and take the same place in the same room again."""
        self._state = ConnectionState.RECONNECTING

        for attempt in range(self._settings.reconnect_attempts):
            logger.info(f"Reconnection attempt {attempt + 1}/{self._settings.reconnect_attempts}")

            await asyncio.sleep(self._settings.reconnect_delay)

            if not self._should_reconnect:
                break

            if await self._do_connect():
                await self._rejoin()
                return

        self._state = ConnectionState.FAILED
        await self._report_error("Failed to reconnect to server")

    async def _rejoin(self) -> None:
        """Restore the previous role; the old handle is gone server-side."""
        room_id = self.view.room_id
        if not room_id:
            return

        self.view.joined = False

        if self.view.role == Role.PLAYER and self.view.color:
            logger.info(f"Rejoining {room_id} as {self.view.color.value}")
            await self.send(CreateRoomRequest.create(room_id, self.view.color.value))
        elif self.view.role == Role.SPECTATOR:
            logger.info(f"Rejoining {room_id} as spectator")
            await self.send(JoinAsSpectatorRequest.create(room_id))

    # =========================================================================
    # Incoming Events
    # =========================================================================

    async def _handle_message(self, data: dict) -> None:
        """Update the local view, then notify waiters and callbacks."""
        msg_type = data.get("type")
        payload = data.get("data") or {}

        try:
            if msg_type == MessageType.SYNC_GAME_STATE.value:
                self._apply_snapshot(payload)

            elif msg_type == MessageType.PLAYER_JOINED.value:
                self._apply_players(payload.get("players") or {})
                self.view.is_ready = bool(payload.get("isReady"))
                if self.view.is_ready:
                    self.view.opponent_left = False

            elif msg_type == MessageType.MOVE_MADE.value:
                self._apply_move(payload)
                self.view.status = GameStatus(payload.get("status", GameStatus.ONGOING.value))
                self.view.result = payload.get("result")

            elif msg_type == MessageType.INVALID_MOVE.value:
                # Undo the optimistic local move
                self.last_error = payload.get("reason") or "Invalid move"
                if self.view.room_id:
                    await self.send(RequestSyncRequest.create(self.view.room_id))

            elif msg_type in (MessageType.SPECTATOR_JOINED.value, MessageType.SPECTATOR_LEFT.value):
                self.view.spectator_count = int(payload.get("count", 0))

            elif msg_type == MessageType.PLAYER_LEFT.value:
                self.view.opponent_left = True
                self.view.is_ready = False
                # The notice does not say which seat emptied
                if self.view.room_id:
                    await self.send(RequestSyncRequest.create(self.view.room_id))

            elif msg_type == MessageType.THEME_CHANGED.value:
                self.view.theme = payload.get("theme")

            elif msg_type in (MessageType.ROOM_FULL.value, MessageType.ROOM_NOT_FOUND.value):
                self.last_error = msg_type
                if not self.view.joined:
                    self.view.reset()

            elif msg_type == MessageType.LEAVE_ROOM.value:
                if payload.get("success"):
                    self.view.reset()

            elif msg_type == MessageType.ERROR.value:
                self.last_error = payload.get("message", "Unknown error")

        except (KeyError, ValueError) as e:
            logger.error(f"Bad {msg_type} payload from server: {e}")

        if msg_type:
            self._enqueue(msg_type, payload)
            await self._dispatch(msg_type, payload)

    def _apply_snapshot(self, payload: dict) -> None:
        self.view.room_id = payload.get("roomId", self.view.room_id)
        self.view.board = chess.Board(payload["position"])
        self.view.status = GameStatus(payload.get("status", GameStatus.ONGOING.value))
        self.view.result = payload.get("result")
        self.view.is_ready = bool(payload.get("isReady"))
        self.view.spectator_count = int(payload.get("spectatorCount", 0))
        self.view.joined = True
        self._apply_players(payload.get("players") or {})
        if self.view.role is None:
            # Snapshots go to joiners; not seated means watching
            self.view.role = Role.SPECTATOR

    def _apply_move(self, payload: dict) -> None:
        """Play the opponent's move on the local board, keeping its history."""
        position = payload["position"]
        uci = (payload.get("move") or {}).get("uci")
        if uci:
            try:
                self.view.board.push_uci(uci)
            except ValueError as e:
                logger.warning(f"Cannot replay {uci} locally: {e}")
        if self.view.board.fen() != position:
            # Out of step with the server; take its position as is
            self.view.board = chess.Board(position)

    def _apply_players(self, players: dict) -> None:
        self.view.players = dict(players)
        for color in Color:
            if self._connection_id and players.get(color.value) == self._connection_id:
                self.view.role = Role.PLAYER
                self.view.color = color
                return
        if self.view.role == Role.PLAYER:
            self.view.role = None
            self.view.color = None

    def _enqueue(self, msg_type: str, payload: dict) -> None:
        queue = self._pending.setdefault(msg_type, asyncio.Queue(maxsize=_MAX_PENDING_PER_TYPE))
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(payload)

    async def _dispatch(self, msg_type: str, payload: dict) -> None:
        for callback in self._callbacks.get(msg_type, []):
            try:
                result = callback(payload)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.exception(f"Callback for {msg_type} failed: {e}")

    async def _report_error(self, message: str) -> None:
        self.last_error = message
        await self._dispatch("clientError", {"message": message})

    async def wait_for(self, event_type: MessageType | str, timeout: float = 5.0) -> Optional[dict]:
        """
        Wait for the next unclaimed server event of a type.

        Returns:
            The event's data dict, or None on timeout
        """
        key = event_type.value if isinstance(event_type, MessageType) else event_type
        queue = self._pending.setdefault(key, asyncio.Queue(maxsize=_MAX_PENDING_PER_TYPE))
        try:
            return await asyncio.wait_for(queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def clear_pending(self) -> None:
        """Forget events nobody waited for."""
        self._pending.clear()

    # =========================================================================
    # Outgoing Requests
    # =========================================================================

    async def send(self, message: Message | dict) -> bool:
        """
        Send a message to the server.

        Returns:
            True if the message was written to the socket
        """
        if not self._websocket or self._state != ConnectionState.CONNECTED:
            await self._report_error("Not connected to server")
            return False

        try:
            data = message.to_json() if isinstance(message, Message) else json.dumps(message)
            await self._websocket.send(data)
            return True
        except websockets.ConnectionClosed as e:
            await self._report_error(f"Failed to send: {e}")
            return False

    async def create_room(self, room_id: str, color: Color | str) -> bool:
        """Create a room, or take the named seat in it."""
        color = Color(color)
        self.view.reset()
        self.view.room_id = room_id
        self.view.role = Role.PLAYER
        self.view.color = color
        return await self.send(CreateRoomRequest.create(room_id, color.value))

    async def join_room(self, room_id: str) -> bool:
        """Take whichever seat is open."""
        self.view.reset()
        self.view.room_id = room_id
        return await self.send(JoinRoomRequest.create(room_id))

    async def spectate(self, room_id: str) -> bool:
        """Watch a room."""
        self.view.reset()
        self.view.room_id = room_id
        self.view.role = Role.SPECTATOR
        return await self.send(JoinAsSpectatorRequest.create(room_id))

    async def leave_room(self) -> bool:
        if not self.view.room_id:
            return False
        return await self.send(LeaveRoomRequest.create(self.view.room_id))

    async def request_sync(self) -> bool:
        if not self.view.room_id:
            return False
        return await self.send(RequestSyncRequest.create(self.view.room_id))

    async def change_theme(self, theme: Any) -> bool:
        if not self.view.room_id:
            return False
        self.view.theme = theme
        return await self.send(ThemeChangeRequest.create(self.view.room_id, theme))

    async def make_move(self, from_square: str, to_square: str, promotion: Optional[str] = None) -> bool:
        """
        Play a move locally and send it.

        The move is checked against the local board first; the server
        re-checks it against its own position either way.
        """
        if not self.view.room_id or not self.view.can_move:
            await self._report_error("Not your move")
            return False

        try:
            move = build_move(self.view.board, from_square, to_square, promotion)
        except ValueError:
            await self._report_error(f"Malformed move {from_square}{to_square}")
            return False

        if not self.view.board.is_legal(move):
            await self._report_error(f"Illegal move {move.uci()}")
            return False

        self.view.board.push(move)
        self.view.status, self.view.result = board_status(self.view.board)
        return await self.send(
            MoveRequest.create(
                self.view.room_id,
                from_square,
                to_square,
                promotion=chess.piece_symbol(move.promotion) if move.promotion else None,
                game_state=self.view.board.fen(),
            )
        )
