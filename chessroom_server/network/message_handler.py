"""
Message handler for routing client messages to room operations.

Parses incoming messages, validates them, runs the matching membership,
relay or reconciliation operation, and describes the replies and room
broadcasts that must follow. Sending is left to the server.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum, auto

from chessroom_server.network.connection_manager import ConnectionManager
from chessroom_server.rooms import (
    ChessRules,
    Departure,
    DisconnectReconciler,
    JoinOutcome,
    JoinStatus,
    MembershipManager,
    MoveRelay,
    MoveStatus,
    Room,
    RoomStore,
)
from chessroom_shared.enums import Color, MessageType, MovePolicy, Role
from chessroom_shared.protocol import (
    Message,
    ErrorMessage,
    InvalidMoveMessage,
    MoveMadeMessage,
    PlayerJoinedMessage,
    PlayerLeftMessage,
    RoomFullMessage,
    RoomNotFoundMessage,
    SpectatorJoinedMessage,
    SpectatorLeftMessage,
    SyncGameStateMessage,
    ThemeChangedMessage,
    parse_message,
)


logger = logging.getLogger(__name__)


class Audience(Enum):
    """Who receives an outbound message."""
    REQUESTER = auto()   # the connection that sent the request
    ROOM = auto()        # every member of the room, requester included
    OTHERS = auto()      # every member of the room except the requester


@dataclass
class Outbound:
    """One message to deliver."""
    message: Message
    audience: Audience


@dataclass
class HandleResult:
    """Result of handling a message."""
    # Room that ROOM and OTHERS deliveries are addressed to
    room_id: str | None = None
    # Deliveries, in the order they must be sent
    outbound: list[Outbound] = field(default_factory=list)

    def reply(self, message: Message) -> "HandleResult":
        self.outbound.append(Outbound(message, Audience.REQUESTER))
        return self

    def to_room(self, message: Message) -> "HandleResult":
        self.outbound.append(Outbound(message, Audience.ROOM))
        return self

    def to_others(self, message: Message) -> "HandleResult":
        self.outbound.append(Outbound(message, Audience.OTHERS))
        return self

    @property
    def responses(self) -> list[Message]:
        """Messages addressed to the requester only."""
        return [o.message for o in self.outbound if o.audience is Audience.REQUESTER]

    @property
    def broadcasts(self) -> list[Message]:
        """Messages addressed to the room."""
        return [o.message for o in self.outbound if o.audience is not Audience.REQUESTER]

    @property
    def is_empty(self) -> bool:
        return not self.outbound


class MessageHandler:
    """
    Routes incoming messages to room operations.

    Each handler method returns a HandleResult listing replies for the
    requester and broadcasts for the room, in delivery order.
    """

    def __init__(
        self,
        store: RoomStore,
        connection_manager: ConnectionManager,
        move_policy: MovePolicy = MovePolicy.TURN,
        rules: ChessRules | None = None
    ):
        self._rooms = store
        self._connections = connection_manager
        self._rules = rules or store.rules
        self._membership = MembershipManager(store)
        self._relay = MoveRelay(store, self._rules)
        self._reconciler = DisconnectReconciler(store, self._membership)
        self._move_policy = move_policy

    @property
    def move_policy(self) -> MovePolicy:
        return self._move_policy

    async def handle_message(
        self,
        connection_id: str,
        message: Message | str | dict
    ) -> HandleResult:
        """
        Handle an incoming message from a connection.

        Args:
            connection_id: Handle of the sending connection
            message: The message (Message object, JSON string, or dict)

        Returns:
            HandleResult with replies and broadcasts
        """
        # Parse message if needed
        try:
            if isinstance(message, str):
                message = parse_message(message)
            elif isinstance(message, dict):
                message = Message.from_dict(message)
        except json.JSONDecodeError as e:
            logger.warning(f"Unparseable message from {connection_id}: {e}")
            return HandleResult().reply(
                ErrorMessage.create(f"Invalid message format: {e}", "PARSE_ERROR")
            )
        except ValueError as e:
            logger.warning(f"Unknown message type from {connection_id}: {e}")
            return HandleResult().reply(
                ErrorMessage.create(f"Unknown message type: {e}", "UNKNOWN_MESSAGE_TYPE")
            )
        except (KeyError, TypeError) as e:
            logger.warning(f"Malformed message from {connection_id}: {e}")
            return HandleResult().reply(
                ErrorMessage.create(f"Invalid message format: {e}", "PARSE_ERROR")
            )

        # Route to appropriate handler
        handler = self._get_handler(message.type)
        if not handler:
            return HandleResult().reply(
                ErrorMessage.create(
                    f"Unexpected message type: {message.type.value}",
                    "UNKNOWN_MESSAGE_TYPE",
                    message.request_id
                )
            )

        try:
            result = await handler(connection_id, message)
        except Exception as e:
            logger.exception(f"Error handling message {message.type.value}: {e}")
            return HandleResult().reply(
                ErrorMessage.create(
                    f"Internal error: {e}",
                    "INTERNAL_ERROR",
                    message.request_id
                )
            )

        # Preserve request_id in replies
        if message.request_id:
            for reply in result.responses:
                reply.request_id = message.request_id

        return result

    async def handle_disconnect(self, connection_id: str) -> list[HandleResult]:
        """
        Reconcile a vanished connection out of every room.

        Returns one HandleResult per affected room.
        """
        results = []
        for departure in self._reconciler.on_disconnect(connection_id):
            self._connections.remove_membership(connection_id, departure.room_id)
            results.append(self._departure_result(departure))
        return results

    def _get_handler(self, message_type: MessageType):
        """Get the handler method for a message type."""
        handlers = {
            # Membership
            MessageType.CREATE_ROOM: self._handle_create_room,
            MessageType.JOIN_ROOM: self._handle_join_room,
            MessageType.JOIN_AS_SPECTATOR: self._handle_join_as_spectator,
            MessageType.LEAVE_ROOM: self._handle_leave_room,
            MessageType.REQUEST_SYNC: self._handle_request_sync,

            # Play
            MessageType.MOVE: self._handle_move,
            MessageType.THEME_CHANGE: self._handle_theme_change,
        }
        return handlers.get(message_type)

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def _get_room_id(self, message: Message) -> str | None:
        room_id = message.data.get("roomId")
        if isinstance(room_id, str) and room_id:
            return room_id
        return None

    def _missing_room_id(self) -> HandleResult:
        return HandleResult().reply(ErrorMessage.create("roomId is required", "MISSING_ROOM_ID"))

    def _sync_message(self, room: Room) -> SyncGameStateMessage:
        return SyncGameStateMessage.create(room.snapshot())

    def _join_result(self, connection_id: str, outcome: JoinOutcome) -> HandleResult:
        """Turn a seat assignment into notices."""
        if outcome.status == JoinStatus.ROOM_FULL:
            return HandleResult().reply(RoomFullMessage.create(outcome.room_id))
        if outcome.status == JoinStatus.ROOM_NOT_FOUND:
            return HandleResult().reply(RoomNotFoundMessage.create(outcome.room_id))

        room = outcome.room
        result = HandleResult(room_id=room.room_id)
        self._connections.add_membership(connection_id, room.room_id)

        if outcome.changed:
            if outcome.promoted:
                result.to_room(SpectatorLeftMessage.create(room.room_id, room.spectator_count))
            result.to_room(
                PlayerJoinedMessage.create(
                    room_id=room.room_id,
                    color=outcome.color.value,
                    players=room.players_payload(),
                    is_ready=outcome.is_ready,
                )
            )

        # The room may already have moves in it
        return result.reply(self._sync_message(room))

    def _departure_result(self, departure: Departure) -> HandleResult:
        """Turn a role removal into notices for whoever remains."""
        result = HandleResult(room_id=departure.room_id)
        if departure.room_deleted:
            return result
        if departure.role == Role.PLAYER:
            return result.to_room(PlayerLeftMessage.create(departure.room_id))
        return result.to_room(SpectatorLeftMessage.create(departure.room_id, departure.spectator_count))

    def _move_policy_violation(self, room: Room, connection_id: str) -> str | None:
        """Reason the connection may not move in this room, or None."""
        if self._move_policy == MovePolicy.OPEN:
            return None

        seat = room.seat_of(connection_id)
        if seat is None:
            return "Only seated players can move"

        if self._move_policy == MovePolicy.TURN:
            to_move = self._rules.side_to_move(room.position)
            if seat != to_move:
                return f"It is {to_move.value}'s turn"

        return None

    # =========================================================================
    # Membership Handlers
    # =========================================================================

    async def _handle_create_room(self, connection_id: str, message: Message) -> HandleResult:
        """Handle createRoom: create the room or claim the named seat."""
        room_id = self._get_room_id(message)
        if not room_id:
            return self._missing_room_id()

        try:
            color = Color(message.data.get("color"))
        except ValueError:
            return HandleResult().reply(
                ErrorMessage.create("color must be 'white' or 'black'", "INVALID_COLOR")
            )

        outcome = self._membership.create_or_join(room_id, connection_id, color)
        return self._join_result(connection_id, outcome)

    async def _handle_join_room(self, connection_id: str, message: Message) -> HandleResult:
        """Handle joinRoom: claim the first open seat."""
        room_id = self._get_room_id(message)
        if not room_id:
            return self._missing_room_id()

        outcome = self._membership.join_any_open_seat(room_id, connection_id)
        return self._join_result(connection_id, outcome)

    async def _handle_join_as_spectator(self, connection_id: str, message: Message) -> HandleResult:
        """Handle joinAsSpectator."""
        room_id = self._get_room_id(message)
        if not room_id:
            return self._missing_room_id()

        outcome = self._membership.join_as_spectator(room_id, connection_id)
        if not outcome.succeeded:
            return HandleResult().reply(RoomNotFoundMessage.create(room_id))

        room = outcome.room
        self._connections.add_membership(connection_id, room_id)

        result = HandleResult(room_id=room_id).reply(self._sync_message(room))
        if outcome.changed:
            result.to_room(SpectatorJoinedMessage.create(room_id, room.spectator_count))
        return result

    async def _handle_leave_room(self, connection_id: str, message: Message) -> HandleResult:
        """Handle leaveRoom: same cleanup as a disconnect, for one room."""
        room_id = self._get_room_id(message)
        if not room_id:
            return self._missing_room_id()

        departure = self._reconciler.release(connection_id, room_id)
        if departure is None:
            return HandleResult().reply(
                Message(type=MessageType.LEAVE_ROOM, data={"roomId": room_id, "success": False})
            )

        self._connections.remove_membership(connection_id, room_id)
        result = self._departure_result(departure)
        return result.reply(
            Message(type=MessageType.LEAVE_ROOM, data={"roomId": room_id, "success": True})
        )

    async def _handle_request_sync(self, connection_id: str, message: Message) -> HandleResult:
        """Handle requestSync: resend the snapshot to a member."""
        room_id = self._get_room_id(message)
        room = self._rooms.get(room_id) if room_id else None
        if room is None or not room.is_member(connection_id):
            logger.debug(f"Ignoring sync request from {connection_id} for {room_id}")
            return HandleResult()

        return HandleResult(room_id=room_id).reply(self._sync_message(room))

    # =========================================================================
    # Play Handlers
    # =========================================================================

    async def _handle_move(self, connection_id: str, message: Message) -> HandleResult:
        """Handle move: enforce the move policy, then relay."""
        room_id = self._get_room_id(message)
        if not room_id:
            return self._missing_room_id()

        proposed = message.data.get("move")
        if not proposed:
            return HandleResult().reply(ErrorMessage.create("move is required", "MISSING_MOVE"))

        room = self._rooms.get(room_id)
        if room is None:
            logger.debug(f"Ignoring move from {connection_id} for unknown room {room_id}")
            return HandleResult()

        violation = self._move_policy_violation(room, connection_id)
        if violation:
            logger.info(f"Move from {connection_id} in {room_id} refused: {violation}")
            return HandleResult(room_id=room_id).reply(InvalidMoveMessage.create(room_id, violation))

        outcome = self._relay.apply_move(
            room_id,
            connection_id,
            proposed,
            position_hint=message.data.get("gameState"),
        )

        if outcome.status == MoveStatus.UNKNOWN_ROOM:
            return HandleResult()

        if outcome.status == MoveStatus.ILLEGAL_MOVE:
            return HandleResult(room_id=room_id).reply(
                InvalidMoveMessage.create(room_id, outcome.reason)
            )

        verdict = outcome.verdict
        # The mover already shows the move locally
        return HandleResult(room_id=room_id).to_others(
            MoveMadeMessage.create(
                room_id=room_id,
                move=verdict.move_payload(),
                position=verdict.position,
                status=verdict.status.value,
                result=verdict.result,
            )
        )

    async def _handle_theme_change(self, connection_id: str, message: Message) -> HandleResult:
        """Handle themeChange: pass the preference on untouched."""
        room_id = self._get_room_id(message)
        if not room_id or room_id not in self._rooms:
            logger.debug(f"Ignoring theme change from {connection_id} for {room_id}")
            return HandleResult()

        return HandleResult(room_id=room_id).to_others(
            ThemeChangedMessage.create(room_id, message.data.get("theme"))
        )
