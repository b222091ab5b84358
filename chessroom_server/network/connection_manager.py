"""
Connection registry for WebSocket clients.

Tracks live connections, the transient handle each one is known by, and
the rooms each one has joined. Sends messages to individual connections
or to a list of room members.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from websockets.asyncio.server import ServerConnection

from chessroom_shared.protocol import Message


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ClientConnection:
    """Tracks a connected client's state."""
    connection_id: str
    websocket: ServerConnection
    rooms: set[str] = field(default_factory=set)
    connected_at: datetime = field(default_factory=_utcnow)
    last_activity: datetime = field(default_factory=_utcnow)

    def update_activity(self) -> None:
        """Update last activity timestamp."""
        self.last_activity = _utcnow()


class ConnectionManager:
    """
    Manages WebSocket connections and their room memberships.

    Provides methods for:
    - Registering connections under a fresh handle
    - Recording which rooms a connection has joined
    - Sending messages to a single connection
    - Broadcasting messages to a set of room members

    All mutation happens from the server's serialized dispatcher, so no
    locking is done here.
    """

    def __init__(self):
        # connection_id -> ClientConnection
        self._connections: dict[str, ClientConnection] = {}

    # =========================================================================
    # Connection Lifecycle
    # =========================================================================

    def connect(self, websocket: ServerConnection, connection_id: str | None = None) -> ClientConnection:
        """
        Register a new connection.

        Returns:
            The ClientConnection, with a freshly generated id unless one is given
        """
        connection = ClientConnection(
            connection_id=connection_id or str(uuid.uuid4()),
            websocket=websocket,
        )
        self._connections[connection.connection_id] = connection
        logger.info(f"Connection {connection.connection_id} registered")
        return connection

    def disconnect(self, connection_id: str) -> ClientConnection | None:
        """
        Forget a connection.

        Returns:
            The ClientConnection if found, None otherwise
        """
        connection = self._connections.pop(connection_id, None)
        if connection:
            logger.info(
                f"Connection {connection_id} unregistered"
                f"{f' (was in {sorted(connection.rooms)})' if connection.rooms else ''}"
            )
        return connection

    # =========================================================================
    # Room Membership
    # =========================================================================

    def add_membership(self, connection_id: str, room_id: str) -> bool:
        """Record that a connection joined a room. False if unknown connection."""
        connection = self._connections.get(connection_id)
        if not connection:
            return False
        connection.rooms.add(room_id)
        return True

    def remove_membership(self, connection_id: str, room_id: str) -> bool:
        """Record that a connection left a room. False if it was not recorded."""
        connection = self._connections.get(connection_id)
        if not connection or room_id not in connection.rooms:
            return False
        connection.rooms.discard(room_id)
        return True

    def rooms_of(self, connection_id: str) -> set[str]:
        """Rooms a connection belongs to."""
        connection = self._connections.get(connection_id)
        return set(connection.rooms) if connection else set()

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, connection_id: str) -> ClientConnection | None:
        return self._connections.get(connection_id)

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    # =========================================================================
    # Messaging
    # =========================================================================

    async def send_to_connection(self, connection_id: str, message: Message | dict | str) -> bool:
        """
        Send a message to a specific connection.

        Returns:
            True if sent successfully, False if not connected or on error
        """
        connection = self._connections.get(connection_id)
        if not connection:
            return False
        return await self._send(connection, message)

    async def broadcast(
        self,
        connection_ids: Iterable[str],
        message: Message | dict | str,
        exclude_connection_id: str | None = None
    ) -> int:
        """
        Send a message to each listed connection.

        Args:
            connection_ids: Recipients, usually the members of one room
            message: Message object, dict, or JSON string
            exclude_connection_id: Optional connection to skip

        Returns:
            Number of connections the message was sent to
        """
        sent_count = 0
        for connection_id in connection_ids:
            if connection_id == exclude_connection_id:
                continue
            if await self.send_to_connection(connection_id, message):
                sent_count += 1
        return sent_count

    async def _send(self, connection: ClientConnection, message: Message | dict | str) -> bool:
        """Internal helper to send a message to a websocket."""
        try:
            if isinstance(message, Message):
                data = message.to_json()
            elif isinstance(message, dict):
                data = json.dumps(message)
            else:
                data = message

            await connection.websocket.send(data)
            connection.update_activity()
            return True

        except Exception as e:
            logger.error(f"Failed to send message to {connection.connection_id}: {e}")
            return False

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        """Get connection statistics."""
        return {
            "total_connections": len(self._connections),
            "connections_in_rooms": sum(1 for c in self._connections.values() if c.rooms),
            "memberships": sum(len(c.rooms) for c in self._connections.values()),
        }
