"""Move application and last-move-centred win detection."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from framework.errors import InvalidMoveError

from .omok_state import WIN_LENGTH, Board, Mark

# (row step, col step): horizontal, vertical, main diagonal, anti-diagonal.
DIRECTIONS: tuple[tuple[int, int], ...] = ((0, 1), (1, 0), (1, 1), (1, -1))


class OutcomeKind(str, Enum):
    NONE = "none"
    LINE = "line"
    DRAW = "draw"


@dataclass(frozen=True)
class Outcome:
    """Result of inspecting the board after one move."""

    kind: OutcomeKind
    mark: Mark | None = None
    run_length: int = 0
    line: tuple[int, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return self.kind is not OutcomeKind.NONE


NO_OUTCOME = Outcome(kind=OutcomeKind.NONE)
DRAW_OUTCOME = Outcome(kind=OutcomeKind.DRAW)


def apply_move(board: Board, index: int, mark: Mark) -> Board:
    """Return a new board with `mark` placed; the input board is untouched."""
    return board.place(index, mark)


def run_through(board: Board, index: int, direction: tuple[int, int], reach: int) -> list[int]:
    """Collect same-mark cells through `index` along one axis, at most `reach` steps each way."""
    mark = board[index]
    row, col = board.row_col(index)
    d_row, d_col = direction
    cells = [index]
    for sign in (1, -1):
        for step in range(1, reach + 1):
            r = row + sign * d_row * step
            c = col + sign * d_col * step
            if not (0 <= r < board.size and 0 <= c < board.size):
                break
            neighbour = board.index_of(r, c)
            if board[neighbour] is not mark:
                break
            cells.append(neighbour)
    return sorted(cells)


def detect_outcome(board: Board, last_index: int, win_length: int = WIN_LENGTH) -> Outcome:
    """Decide whether the stone at `last_index` ended the game.

    Only the four axes through the last stone are scanned, each bounded to
    `win_length - 1` steps per side, so the cost does not depend on board
    area; only a winning run is then followed to its ends. A line is
    checked before exhaustion, so a winning final stone is reported as a
    line rather than a draw.
    """
    if not board.in_bounds(last_index):
        raise InvalidMoveError(last_index, f"Cell {last_index} is outside the {board.size}x{board.size} board.")
    mark = board[last_index]
    if mark is Mark.EMPTY:
        raise InvalidMoveError(last_index, f"Cell {last_index} holds no stone.")

    reach = win_length - 1
    for direction in DIRECTIONS:
        if len(run_through(board, last_index, direction, reach)) >= win_length:
            # Once per game: report the whole run, overlines included.
            cells = run_through(board, last_index, direction, board.size)
            return Outcome(kind=OutcomeKind.LINE, mark=mark, run_length=len(cells), line=tuple(cells))

    if board.is_full():
        return DRAW_OUTCOME
    return NO_OUTCOME


def find_line(board: Board, mark: Mark, win_length: int = WIN_LENGTH) -> tuple[int, ...]:
    """Locate any winning line of `mark` by scanning the whole board.

    Used once per concluded game for reporting; move handling relies on
    `detect_outcome` instead.
    """
    for index, cell in enumerate(board.cells):
        if cell is not mark:
            continue
        for direction in DIRECTIONS:
            if len(run_through(board, index, direction, win_length - 1)) >= win_length:
                return tuple(run_through(board, index, direction, board.size))
    return ()
