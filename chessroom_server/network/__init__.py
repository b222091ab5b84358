"""
Network layer for the chess room server.

Provides WebSocket server, connection management, and message handling.
"""

from chessroom_server.network.connection_manager import ConnectionManager, ClientConnection
from chessroom_server.network.message_handler import MessageHandler, HandleResult, Audience
from chessroom_server.network.server import ChessRoomServer, run_server


__all__ = [
    "ConnectionManager",
    "ClientConnection",
    "MessageHandler",
    "HandleResult",
    "Audience",
    "ChessRoomServer",
    "run_server",
]
