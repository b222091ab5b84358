"""
Server configuration loaded from environment variables.
"""
import os
from dotenv import load_dotenv

from chessroom_shared.enums import MovePolicy

load_dotenv()

class Config:
    """Server configuration."""

    # Server settings
    HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
    PORT: int = int(os.getenv("SERVER_PORT", "8765"))

    # Websocket keepalive (seconds)
    PING_INTERVAL: float = float(os.getenv("PING_INTERVAL", "30"))
    PING_TIMEOUT: float = float(os.getenv("PING_TIMEOUT", "10"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Who may submit moves: open | seated | turn
    MOVE_POLICY: MovePolicy = MovePolicy(os.getenv("MOVE_POLICY", MovePolicy.TURN.value).lower())


config = Config()
