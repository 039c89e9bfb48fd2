"""Move definitions for five-in-a-row."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from framework.errors import InvalidMoveError
from framework.move import Move


class MoveType(str, Enum):
    """Supported move discriminators."""

    PLACE_STONE = "PlaceStone"


@dataclass(frozen=True)
class PlaceStone(Move):
    """Place the mover's stone on a board index."""

    index: int
    move_type = MoveType.PLACE_STONE.value

    def __post_init__(self) -> None:
        if isinstance(self.index, bool) or not isinstance(self.index, int):
            raise ValueError(f"Stone index must be an integer; received {self.index!r}.")


def move_from_dict(data: Mapping[str, Any], board_size: int | None = None) -> Move:
    """Parse a move payload.

    `row`/`col` coordinates are resolved against `board_size` when the
    caller knows the room's board; a client-sent `board_size` must agree.
    """
    move_type = data.get("type") or data.get("move_type") or MoveType.PLACE_STONE.value
    if move_type != MoveType.PLACE_STONE.value:
        raise ValueError(f"Unknown move type: {move_type!r}")
    if "index" in data:
        return PlaceStone(index=data["index"])
    if not {"row", "col"} <= set(data):
        raise ValueError("PlaceStone requires 'index' (or 'row' and 'col').")

    claimed_size = data.get("board_size")
    if board_size is None:
        if claimed_size is None:
            raise ValueError("'row' and 'col' need a 'board_size'.")
        board_size = _as_int(claimed_size, "board_size")
    elif claimed_size is not None and _as_int(claimed_size, "board_size") != board_size:
        raise ValueError(f"Board is {board_size}x{board_size}, not {claimed_size}x{claimed_size}.")

    row, col = _as_int(data["row"], "row"), _as_int(data["col"], "col")
    index = row * board_size + col
    if not (0 <= row < board_size and 0 <= col < board_size):
        raise InvalidMoveError(index, f"Cell ({row}, {col}) is outside the {board_size}x{board_size} board.")
    return PlaceStone(index=index)


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer; received {value!r}.")
    return value
