"""
Room state and the operations that change it.
"""
from .rules import ChessRules, MoveVerdict
from .room import Room, MoveRecord
from .store import RoomStore
from .membership import MembershipManager, JoinOutcome, JoinStatus
from .relay import MoveRelay, MoveOutcome, MoveStatus
from .reconciler import DisconnectReconciler, Departure

__all__ = [
    "ChessRules",
    "MoveVerdict",
    "Room",
    "MoveRecord",
    "RoomStore",
    "MembershipManager",
    "JoinOutcome",
    "JoinStatus",
    "MoveRelay",
    "MoveOutcome",
    "MoveStatus",
    "DisconnectReconciler",
    "Departure",
]
