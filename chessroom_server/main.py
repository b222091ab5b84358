"""
Main entry point for the chess room server.

Usage:
    python -m chessroom_server.main

Or:
    chessroom-server
"""

from chessroom_server.network.server import main


if __name__ == "__main__":
    main()
