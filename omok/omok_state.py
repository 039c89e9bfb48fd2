"""Board, player profile, and room state for five-in-a-row."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping, Sequence

from framework.errors import InvalidMoveError
from framework.result import DRAW
from framework.state import State

BOARD_SIZE = 10
WIN_LENGTH = 5
DEFAULT_DISPLAY_NAME = "Friend"


class Mark(str, Enum):
    """Cell contents. The host plays X, the guest plays O."""

    EMPTY = ""
    X = "X"
    O = "O"


class RoomStatus(str, Enum):
    """Room lifecycle: waiting -> playing -> finished (-> playing on restart)."""

    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"


HOST_MARK = Mark.X
GUEST_MARK = Mark.O


@dataclass(frozen=True)
class PlayerProfile(State):
    """Stable identity plus display attributes captured into a room."""

    uid: str
    display_name: str = DEFAULT_DISPLAY_NAME
    photo_url: str | None = None
    email: str | None = None

    def __post_init__(self) -> None:
        uid = str(self.uid).strip()
        if not uid:
            raise ValueError("Player uid must be non-empty.")
        if uid == DRAW:
            raise ValueError(f"Player uid {DRAW!r} is reserved.")
        object.__setattr__(self, "uid", uid)
        if not (self.display_name or "").strip():
            object.__setattr__(self, "display_name", DEFAULT_DISPLAY_NAME)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PlayerProfile":
        """Accept both snake_case documents and auth-provider camelCase payloads."""
        return cls(
            uid=str(data["uid"]),
            display_name=data.get("display_name") or data.get("displayName") or DEFAULT_DISPLAY_NAME,
            photo_url=data.get("photo_url") or data.get("photoURL"),
            email=data.get("email"),
        )


@dataclass(frozen=True)
class Board:
    """Square grid of N*N cells stored row-major."""

    size: int
    cells: tuple[Mark, ...]
    empty_count: int = field(default=-1, compare=False)

    def __post_init__(self) -> None:
        if self.size < 1:
            raise ValueError(f"Board size must be >= 1; received {self.size}.")
        if len(self.cells) != self.size * self.size:
            raise ValueError(f"Board of size {self.size} needs {self.size * self.size} cells; received {len(self.cells)}.")
        if self.empty_count < 0:
            object.__setattr__(self, "empty_count", sum(1 for cell in self.cells if cell is Mark.EMPTY))

    @classmethod
    def empty(cls, size: int = BOARD_SIZE) -> "Board":
        return cls(size=size, cells=(Mark.EMPTY,) * (size * size), empty_count=size * size)

    @classmethod
    def from_cells(cls, cells: Sequence[str | Mark], size: int | None = None) -> "Board":
        """Build a board from stored cell values; size defaults to sqrt(len)."""
        if size is None:
            size = math.isqrt(len(cells))
        return cls(size=size, cells=tuple(Mark(value) for value in cells))

    @classmethod
    def from_rows(cls, rows: Sequence[str]) -> "Board":
        """Build a board from text rows using `X`, `O`, and `.` for empty."""
        cells = [Mark.EMPTY if char == "." else Mark(char) for row in rows for char in row]
        return cls(size=len(rows), cells=tuple(cells))

    @property
    def area(self) -> int:
        return self.size * self.size

    @property
    def stone_count(self) -> int:
        return self.area - self.empty_count

    def __len__(self) -> int:
        return len(self.cells)

    def __getitem__(self, index: int) -> Mark:
        return self.cells[index]

    def in_bounds(self, index: int) -> bool:
        return 0 <= index < self.area

    def is_full(self) -> bool:
        return self.empty_count == 0

    def row_col(self, index: int) -> tuple[int, int]:
        return divmod(index, self.size)

    def index_of(self, row: int, col: int) -> int:
        return row * self.size + col

    def empty_indices(self) -> list[int]:
        return [index for index, cell in enumerate(self.cells) if cell is Mark.EMPTY]

    def place(self, index: int, mark: Mark) -> "Board":
        """Return a copy with `mark` at `index`.

        Raises InvalidMoveError when the index is outside the grid or the
        cell is taken.
        """
        if mark is Mark.EMPTY:
            raise ValueError("Cannot place an empty mark.")
        if not isinstance(index, int) or isinstance(index, bool) or not self.in_bounds(index):
            raise InvalidMoveError(index, f"Cell {index} is outside the {self.size}x{self.size} board.")
        if self.cells[index] is not Mark.EMPTY:
            raise InvalidMoveError(index, f"Cell {index} is already occupied.")
        cells = list(self.cells)
        cells[index] = mark
        return Board(size=self.size, cells=tuple(cells), empty_count=self.empty_count - 1)

    def to_list(self) -> list[str]:
        return [cell.value for cell in self.cells]

    def to_dict(self) -> dict[str, Any]:
        return {"size": self.size, "cells": self.to_list()}


@dataclass(frozen=True)
class RoomState(State):
    """Authoritative state of one room, mirrored 1:1 by its store document."""

    room_id: str
    host: PlayerProfile
    board: Board
    current_turn: str
    status: RoomStatus
    created_at: int
    guest: PlayerProfile | None = None
    winner: str | None = None
    round: int = 1

    @property
    def turn_index(self) -> int:
        return self.board.stone_count

    def is_host(self, player_id: str) -> bool:
        return self.host.uid == player_id

    def is_participant(self, player_id: str) -> bool:
        return self.is_host(player_id) or (self.guest is not None and self.guest.uid == player_id)

    def seat_of(self, player_id: str) -> str | None:
        if self.is_host(player_id):
            return "host"
        if self.guest is not None and self.guest.uid == player_id:
            return "guest"
        return None

    def mark_for(self, player_id: str) -> Mark | None:
        seat = self.seat_of(player_id)
        if seat == "host":
            return HOST_MARK
        if seat == "guest":
            return GUEST_MARK
        return None

    def opponent_of(self, player_id: str) -> PlayerProfile | None:
        if self.is_host(player_id):
            return self.guest
        if self.guest is not None and self.guest.uid == player_id:
            return self.host
        return None

    def with_board(self, board: Board) -> "RoomState":
        return replace(self, board=board)

    def to_dict(self) -> dict[str, Any]:
        """Return the store document for this room."""
        return {
            "id": self.room_id,
            "host": self.host.to_dict(),
            "guest": self.guest.to_dict() if self.guest is not None else None,
            "board": self.board.to_list(),
            "board_size": self.board.size,
            "current_turn": self.current_turn,
            "status": self.status.value,
            "winner": self.winner,
            "created_at": self.created_at,
            "round": self.round,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RoomState":
        """Rebuild a room from its store document."""
        guest = data.get("guest")
        return cls(
            room_id=str(data["id"]),
            host=PlayerProfile.from_dict(data["host"]),
            board=Board.from_cells(data["board"], size=data.get("board_size")),
            current_turn=str(data["current_turn"]),
            status=RoomStatus(str(data["status"])),
            created_at=int(data.get("created_at", 0)),
            guest=PlayerProfile.from_dict(guest) if guest else None,
            winner=data.get("winner"),
            round=int(data.get("round", 1)),
        )
