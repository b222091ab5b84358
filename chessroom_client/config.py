"""
Client configuration settings.
"""

import os
from dataclasses import dataclass


@dataclass
class ClientSettings:
    """Client configuration."""

    # Server connection
    server_host: str = "localhost"
    server_port: int = 8765

    # Reconnection settings
    reconnect_attempts: int = 5
    reconnect_delay: float = 2.0

    # Seconds to wait for the server's handshake
    connect_timeout: float = 10.0

    @property
    def server_url(self) -> str:
        return f"ws://{self.server_host}:{self.server_port}"


def load_settings() -> ClientSettings:
    """Load settings from environment variables."""
    return ClientSettings(
        server_host=os.getenv("CHESSROOM_SERVER_HOST", "localhost"),
        server_port=int(os.getenv("CHESSROOM_SERVER_PORT", "8765")),
        reconnect_attempts=int(os.getenv("CHESSROOM_RECONNECT_ATTEMPTS", "5")),
        reconnect_delay=float(os.getenv("CHESSROOM_RECONNECT_DELAY", "2.0")),
        connect_timeout=float(os.getenv("CHESSROOM_CONNECT_TIMEOUT", "10.0")),
    )


settings = load_settings()
