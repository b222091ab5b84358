"""
WebSocket server for chess rooms.

Main entry point that ties together connection management, the room
store and message handling.
"""

import asyncio
import logging
import signal
from typing import Any

import websockets
from websockets.asyncio.server import Server, ServerConnection, serve

from chessroom_server.config import config
from chessroom_server.network.connection_manager import ConnectionManager
from chessroom_server.network.message_handler import Audience, HandleResult, MessageHandler
from chessroom_server.rooms import ChessRules, RoomStore
from chessroom_shared.enums import MovePolicy
from chessroom_shared.protocol import ConnectedMessage


logger = logging.getLogger(__name__)


class ChessRoomServer:
    """
    WebSocket server for two-player chess rooms with spectators.

    Inbound events are dispatched one at a time: an event is handled and all
    of its deliveries are sent before the next event is looked at, so every
    member of a room sees moves in the order they were accepted.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        move_policy: MovePolicy | None = None,
        rules: ChessRules | None = None
    ):
        self.host = host or config.HOST
        self.port = config.PORT if port is None else port

        # Initialize managers
        self._rooms = RoomStore(rules)
        self._connections = ConnectionManager()
        self._handler = MessageHandler(
            self._rooms,
            self._connections,
            move_policy=move_policy or config.MOVE_POLICY,
        )

        # Server state
        self._server: Server | None = None
        self._running = False
        self._shutdown_event = asyncio.Event()
        self._dispatch_lock = asyncio.Lock()

    @property
    def rooms(self) -> RoomStore:
        return self._rooms

    @property
    def connections(self) -> ConnectionManager:
        return self._connections

    @property
    def bound_port(self) -> int | None:
        """Actual listening port, useful when started with port 0."""
        if not self._server:
            return None
        for sock in self._server.sockets:
            return sock.getsockname()[1]
        return None

    async def start(self) -> None:
        """Start the WebSocket server and run until stopped."""
        await self.listen()

        # Wait for shutdown signal
        await self._shutdown_event.wait()

    async def listen(self) -> None:
        """Open the listening socket without blocking."""
        self._running = True
        self._shutdown_event.clear()

        self._server = await serve(
            self._handle_client,
            self.host,
            self.port,
            ping_interval=config.PING_INTERVAL,
            ping_timeout=config.PING_TIMEOUT,
        )

        logger.info(f"Chess room server started on ws://{self.host}:{self.bound_port}")

    async def stop(self) -> None:
        """Stop the server gracefully."""
        logger.info("Shutting down server...")
        self._running = False

        if self._server:
            self._server.close()
            await self._server.wait_closed()

        self._shutdown_event.set()
        logger.info("Server stopped")

    def request_shutdown(self) -> None:
        """Request server shutdown (can be called from signal handler)."""
        asyncio.create_task(self.stop())

    async def _handle_client(self, websocket: ServerConnection) -> None:
        """
        Handle a client connection.

        The connection gets a fresh handle and a ``connected`` message, then
        every text frame is routed through the message handler.
        """
        connection = self._connections.connect(websocket)
        connection_id = connection.connection_id

        try:
            await self._connections.send_to_connection(
                connection_id,
                ConnectedMessage.create(connection_id),
            )

            # Handle messages until disconnect
            async for raw_message in websocket:
                if not self._running:
                    break

                await self._handle_message(connection_id, raw_message)

        except websockets.ConnectionClosed:
            logger.debug(f"Connection closed for {connection_id}")
        except Exception as e:
            logger.exception(f"Error handling client {connection_id}: {e}")
        finally:
            await self._handle_disconnect(connection_id)

    async def _handle_message(self, connection_id: str, raw_message: str | bytes) -> None:
        """Handle an incoming message from a connected client."""
        if isinstance(raw_message, bytes):
            raw_message = raw_message.decode("utf-8", errors="replace")

        async with self._dispatch_lock:
            result = await self._handler.handle_message(connection_id, raw_message)
            await self._deliver(connection_id, result)

    async def _handle_disconnect(self, connection_id: str) -> None:
        """Drop the connection and tell the rooms it was in."""
        async with self._dispatch_lock:
            self._connections.disconnect(connection_id)
            for result in await self._handler.handle_disconnect(connection_id):
                await self._deliver(connection_id, result)

        logger.info(f"Connection {connection_id} disconnected")

    async def _deliver(self, connection_id: str, result: HandleResult) -> None:
        """Send a handler's replies and broadcasts in order."""
        for outbound in result.outbound:
            if outbound.audience is Audience.REQUESTER:
                await self._connections.send_to_connection(connection_id, outbound.message)
                continue

            room = self._rooms.get(result.room_id) if result.room_id else None
            if room is None:
                continue

            exclude = connection_id if outbound.audience is Audience.OTHERS else None
            await self._connections.broadcast(
                room.members(),
                outbound.message,
                exclude_connection_id=exclude,
            )

    def get_stats(self) -> dict[str, Any]:
        """Get server statistics."""
        return {
            "running": self._running,
            "move_policy": self._handler.move_policy.value,
            "connections": self._connections.get_stats(),
            "rooms": self._rooms.get_stats(),
        }


async def run_server(host: str | None = None, port: int | None = None) -> None:
    """
    Run the chess room server.

    Sets up signal handlers for graceful shutdown.
    """
    server = ChessRoomServer(host, port)

    # Set up signal handlers
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, server.request_shutdown)

    try:
        await server.start()
    finally:
        # Clean up signal handlers
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)


def main():
    """Entry point for running the server."""
    # Configure logging
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    print(f"Starting chess room server on ws://{config.HOST}:{config.PORT}")
    print(f"Move policy: {config.MOVE_POLICY.value}")
    print("Press Ctrl+C to stop")

    try:
        asyncio.run(run_server())
    except KeyboardInterrupt:
        print("\nServer stopped")


if __name__ == "__main__":
    main()
