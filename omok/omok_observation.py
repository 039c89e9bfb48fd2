"""Per-player room view."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from framework.observation import Observation

from .omok_state import Mark, RoomStatus


@dataclass(frozen=True)
class OmokObservation(Observation):
    """What one viewer sees of a room.

    `last_move` is a client-local hint and never part of the stored room.
    """

    player_id: str
    room_id: str
    role: str
    mark: Mark | None
    board: tuple[Mark, ...]
    board_size: int
    status: RoomStatus
    current_turn: str | None
    is_my_turn: bool
    winner: str | None
    result: str | None
    host: dict[str, Any]
    guest: dict[str, Any] | None
    round: int
    turn_index: int
    last_move: int | None = None
