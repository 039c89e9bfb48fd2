"""Game result models and termination metadata."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Self

from .serialize import to_serializable

DRAW = "draw"


class TerminationReason(str, Enum):
    """Standardized reasons a game instance ends."""

    NORMAL_WIN = "normal_win"
    DRAW = "draw"
    ROOM_DELETED = "room_deleted"
    MAX_TURNS = "max_turns"


@dataclass(frozen=True)
class GameResult:
    """Structured outcome for one concluded game in a room."""

    room_id: str
    game_name: str
    round: int
    winner: str | None
    termination_reason: TerminationReason
    host_id: str | None = None
    guest_id: str | None = None
    turns: int = 0
    winning_line: tuple[int, ...] = ()
    final_state_digest: str | None = None
    event_count: int = 0
    log_path: str | None = None
    stats: dict[str, Any] = field(default_factory=dict)

    @property
    def is_draw(self) -> bool:
        return self.winner == DRAW

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable result object."""
        return {
            "room_id": self.room_id,
            "game_name": self.game_name,
            "round": self.round,
            "winner": self.winner,
            "termination_reason": self.termination_reason.value,
            "host_id": self.host_id,
            "guest_id": self.guest_id,
            "turns": self.turns,
            "winning_line": list(self.winning_line),
            "final_state_digest": self.final_state_digest,
            "event_count": self.event_count,
            "log_path": self.log_path,
            "stats": to_serializable(self.stats),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        """Build a result from serialized data."""
        return cls(
            room_id=str(data["room_id"]),
            game_name=str(data["game_name"]),
            round=int(data.get("round", 1)),
            winner=data.get("winner"),
            termination_reason=TerminationReason(str(data["termination_reason"])),
            host_id=data.get("host_id"),
            guest_id=data.get("guest_id"),
            turns=int(data.get("turns", 0)),
            winning_line=tuple(int(index) for index in data.get("winning_line", ())),
            final_state_digest=data.get("final_state_digest"),
            event_count=int(data.get("event_count", 0)),
            log_path=data.get("log_path"),
            stats=dict(data.get("stats", {})),
        )
