"""Core interface for two-seat, turn-based room games."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Generic, Mapping, Sequence, TypeVar

from .move import Move
from .observation import Observation
from .result import GameResult

PlayerId = str
StateT = TypeVar("StateT")
MoveT = TypeVar("MoveT", bound=Move)
ObservationT = TypeVar("ObservationT", bound=Observation)
ProfileT = TypeVar("ProfileT")


class Game(ABC, Generic[StateT, MoveT, ObservationT, ProfileT]):
    """Pure transition functions for a room hosted by one player and joined by another.

    Every method returns a new state; none of them touch a store. Callers
    commit the returned state with whatever atomic primitive the store offers.
    """

    game_name: str = "game"

    @abstractmethod
    def new_room(self, room_id: str, host: ProfileT, created_at: int) -> StateT:
        """Create the waiting state for a fresh room."""

    @abstractmethod
    def join(self, state: StateT, player: ProfileT) -> StateT:
        """Seat a second player and start play."""

    @abstractmethod
    def player_ids(self, state: StateT) -> Sequence[PlayerId]:
        """Return the seated participant IDs (host first)."""

    @abstractmethod
    def role_for_player(self, state: StateT, player_id: PlayerId) -> str | None:
        """Return a role label for a player (`host`, `guest`, or None)."""

    @abstractmethod
    def current_player(self, state: StateT) -> PlayerId | None:
        """Return the player ID holding the turn."""

    @abstractmethod
    def legal_moves(self, state: StateT, player_id: PlayerId) -> Sequence[MoveT]:
        """Return every legal move for a player (empty when it is not their turn)."""

    @abstractmethod
    def is_legal(self, state: StateT, player_id: PlayerId, move: MoveT) -> tuple[bool, str | None]:
        """Return whether a move is legal and an optional reason when illegal."""

    @abstractmethod
    def apply_move(self, state: StateT, player_id: PlayerId, move: MoveT) -> StateT:
        """Apply a legal move and return the next state."""

    @abstractmethod
    def restart(self, state: StateT, player_id: PlayerId) -> StateT:
        """Reset a finished game for a rematch in the same room."""

    @abstractmethod
    def is_terminal(self, state: StateT) -> bool:
        """Return whether the current game instance is over."""

    @abstractmethod
    def outcome(self, state: StateT) -> GameResult:
        """Return a structured result for a terminal state."""

    @abstractmethod
    def observation(self, state: StateT, player_id: PlayerId, last_move: int | None = None) -> ObservationT:
        """Return a player-specific view of the state."""

    @abstractmethod
    def render(self, state: StateT, player_id: PlayerId | None = None) -> str:
        """Render the state for debugging and CLI output."""

    def parse_move(self, data: Mapping[str, Any]) -> MoveT:
        """Parse a move payload produced by external clients."""
        raise NotImplementedError(f"{self.__class__.__name__} does not implement parse_move().")
