"""Agent interface used by the match runner."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Sequence

from .events import RoomEvent
from .move import Move
from .observation import Observation
from .result import GameResult


class Agent(ABC):
    """Base interface for autonomous or scripted players seated in a room."""

    def __init__(self, agent_id: str):
        self.agent_id = agent_id

    def reset(self, room_id: str, player_id: str, role: str | None, seed: int) -> None:
        """Reset internal state before a new game."""

    @abstractmethod
    def act(self, observation: Observation, legal_moves: Sequence[Move]) -> Move:
        """Return the next move given an observation and the legal moves."""

    def on_illegal_move(self, error: Exception, observation: Observation) -> None:
        """Optional callback for illegal move feedback."""

    def on_game_end(self, result: GameResult, history: Sequence[RoomEvent]) -> None:
        """Optional callback invoked when the game ends."""

    def debug_context(self) -> dict[str, Any] | None:
        """Optional diagnostics payload for logging around errors."""
        return None
