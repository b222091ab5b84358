"""
python-chess helpers used by both the server's rules adapter and the client
mirror, so that both sides read moves and game ends the same way.
"""
from typing import Optional

import chess

from chessroom_shared.enums import GameStatus


def build_move(board: chess.Board, from_square: str, to_square: str, promotion: Optional[str] = None) -> chess.Move:
    """
    Move from two squares and an optional promotion piece.

    A promotion letter only counts when a pawn reaches the last rank; on any
    other move it is ignored. A pawn reaching the last rank without a letter
    promotes to a queen.

    Raises:
        ValueError: unreadable squares or promotion letter
    """
    move = chess.Move.from_uci(f"{from_square}{to_square}".lower())

    if board.piece_type_at(move.from_square) != chess.PAWN:
        return move
    if chess.square_rank(move.to_square) not in (0, 7):
        return move

    return chess.Move.from_uci(f"{from_square}{to_square}{promotion or 'q'}".lower())


def board_status(board: chess.Board) -> tuple[GameStatus, Optional[str]]:
    """
    Terminal state of a board and its result string.

    Threefold repetition and the fifty-move rule end the game as soon as they
    occur; repetition needs the board's move stack to be seen.
    """
    outcome = board.outcome()
    if outcome is None:
        if board.is_repetition(3) or board.is_fifty_moves():
            return GameStatus.DRAW, "1/2-1/2"
        return GameStatus.ONGOING, None
    if outcome.termination == chess.Termination.CHECKMATE:
        return GameStatus.CHECKMATE, outcome.result()
    if outcome.termination == chess.Termination.STALEMATE:
        return GameStatus.STALEMATE, outcome.result()
    return GameStatus.DRAW, outcome.result()
