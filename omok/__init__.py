"""Five-in-a-row package exports."""

from .omok_game import OmokGame
from .omok_moves import MoveType, PlaceStone, move_from_dict
from .omok_observation import OmokObservation
from .omok_rules import Outcome, OutcomeKind, apply_move, detect_outcome
from .omok_state import BOARD_SIZE, WIN_LENGTH, Board, Mark, PlayerProfile, RoomState, RoomStatus

__all__ = [
    "BOARD_SIZE",
    "Board",
    "Mark",
    "MoveType",
    "OmokGame",
    "OmokObservation",
    "Outcome",
    "OutcomeKind",
    "PlaceStone",
    "PlayerProfile",
    "RoomState",
    "RoomStatus",
    "WIN_LENGTH",
    "apply_move",
    "detect_outcome",
    "move_from_dict",
]
