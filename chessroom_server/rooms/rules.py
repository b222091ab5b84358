"""
Boundary to the chess rules engine.

Rooms never interpret positions themselves. Everything they need to know
about legality, the resulting position and game end comes from here.
"""
from dataclasses import dataclass
from typing import Any, Sequence

import chess

from chessroom_shared.board import board_status, build_move
from chessroom_shared.enums import Color, GameStatus


@dataclass(frozen=True)
class MoveVerdict:
    """Result of validating a candidate move against a position."""
    legal: bool
    position: str | None = None       # FEN after the move
    uci: str | None = None
    san: str | None = None
    status: GameStatus = GameStatus.ONGOING
    result: str | None = None          # "1-0", "0-1", "1/2-1/2"
    reason: str = ""

    @classmethod
    def illegal(cls, reason: str) -> "MoveVerdict":
        return cls(legal=False, reason=reason)

    def move_payload(self) -> dict[str, Any]:
        """Wire representation of the applied move."""
        if not self.uci:
            return {}
        payload = {
            "from": self.uci[:2],
            "to": self.uci[2:4],
            "uci": self.uci,
            "san": self.san,
        }
        if len(self.uci) > 4:
            payload["promotion"] = self.uci[4:]
        return payload


class ChessRules:
    """
    Standard chess rules backed by python-chess.

    Positions are FEN strings. Moves may be given as a mapping with
    ``from``/``to``/optional ``promotion`` keys, a UCI string or a SAN string.
    Passing the UCI moves played so far as ``history`` lets repetition draws
    be detected; without it only the position itself is considered.
    """

    def initial_position(self) -> str:
        return chess.STARTING_FEN

    def validate(self, position: str, move: Any, history: Sequence[str] = ()) -> MoveVerdict:
        """Check ``move`` against ``position`` and compute the outcome."""
        try:
            board = self._board(position, history)
        except ValueError as e:
            return MoveVerdict.illegal(f"Unreadable position: {e}")

        try:
            parsed = self._parse_move(board, move)
        except ValueError as e:
            return MoveVerdict.illegal(str(e) or "Malformed move")

        if not board.is_legal(parsed):
            return MoveVerdict.illegal(f"Illegal move {parsed.uci()}")

        san = board.san(parsed)
        board.push(parsed)
        status, result = board_status(board)

        return MoveVerdict(
            legal=True,
            position=board.fen(),
            uci=parsed.uci(),
            san=san,
            status=status,
            result=result,
        )

    def side_to_move(self, position: str) -> Color:
        board = chess.Board(position)
        return Color.WHITE if board.turn == chess.WHITE else Color.BLACK

    def status(self, position: str, history: Sequence[str] = ()) -> tuple[GameStatus, str | None]:
        """Terminal state of a position."""
        return board_status(self._board(position, history))

    def _board(self, position: str, history: Sequence[str]) -> chess.Board:
        if not history:
            return chess.Board(position)

        board = chess.Board(self.initial_position())
        for uci in history:
            board.push_uci(uci)
        if board.fen() != position:
            raise ValueError("move history does not lead to the position")
        return board

    def _parse_move(self, board: chess.Board, move: Any) -> chess.Move:
        if isinstance(move, dict):
            from_sq = move.get("from")
            to_sq = move.get("to")
            if not isinstance(from_sq, str) or not isinstance(to_sq, str):
                raise ValueError("Move needs 'from' and 'to' squares")
            promotion = move.get("promotion") or None
            if promotion is not None and not isinstance(promotion, str):
                raise ValueError("Promotion must be a piece letter")
            return build_move(board, from_sq, to_sq, promotion)

        if isinstance(move, str) and move.strip():
            text = move.strip()
            try:
                return chess.Move.from_uci(text.lower())
            except ValueError:
                # Not UCI; try SAN against the current position
                return board.parse_san(text)

        raise ValueError("Move must be an object or a string")
