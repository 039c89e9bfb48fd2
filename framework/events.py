"""Room event schema and JSONL logging utilities."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from time import time
from typing import Any, Iterable, Mapping

from .serialize import json_dumps, to_serializable


class EventType(str, Enum):
    """Lifecycle events recorded for every room."""

    ROOM_CREATED = "room_created"
    GUEST_JOINED = "guest_joined"
    JOIN_REJECTED = "join_rejected"
    MOVE = "move"
    ILLEGAL_MOVE = "illegal_move"
    GAME_OVER = "game_over"
    RESTART = "restart"
    ROOM_DELETED = "room_deleted"
    STATS_RECORDED = "stats_recorded"
    STATS_FAILED = "stats_failed"


@dataclass(frozen=True)
class RoomEvent:
    """Single replay event for one room."""

    event_type: EventType
    room_id: str
    round: int
    turn: int
    timestamp_ms: int
    payload: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        """Return JSON-serializable event data."""
        return {
            "event_type": self.event_type.value,
            "room_id": self.room_id,
            "round": self.round,
            "turn": self.turn,
            "timestamp_ms": self.timestamp_ms,
            "payload": to_serializable(self.payload),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RoomEvent":
        """Build an event from a dictionary payload."""
        return cls(
            event_type=EventType(str(data["event_type"])),
            room_id=str(data["room_id"]),
            round=int(data.get("round", 1)),
            turn=int(data["turn"]),
            timestamp_ms=int(data["timestamp_ms"]),
            payload=dict(data.get("payload", {})),
        )

    @classmethod
    def create(
        cls,
        event_type: EventType,
        room_id: str,
        turn: int,
        payload: dict[str, Any],
        *,
        round: int = 1,
    ) -> "RoomEvent":
        """Construct an event stamped with the current wall-clock time."""
        return cls(
            event_type=event_type,
            room_id=room_id,
            round=round,
            turn=turn,
            timestamp_ms=int(time() * 1000),
            payload=payload,
        )


def write_jsonl(path: str | Path, events: Iterable[RoomEvent]) -> None:
    """Persist events as JSONL, replacing any existing file."""
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as handle:
        for event in events:
            handle.write(json_dumps(event.to_dict()))
            handle.write("\n")


def append_jsonl(path: str | Path, event: RoomEvent) -> None:
    """Append one event to a JSONL log."""
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("a", encoding="utf-8") as handle:
        handle.write(json_dumps(event.to_dict()))
        handle.write("\n")


def read_jsonl(path: str | Path) -> list[RoomEvent]:
    """Load events written by `write_jsonl` or `append_jsonl`."""
    events: list[RoomEvent] = []
    for line in Path(path).read_text(encoding="utf-8").splitlines():
        if line.strip():
            events.append(RoomEvent.from_dict(json.loads(line)))
    return events
