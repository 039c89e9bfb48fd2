"""Random baseline agent."""

from __future__ import annotations

import hashlib
import random
from collections.abc import Sequence

from ..errors import AgentExecutionError
from ..move import Move
from ..observation import Observation
from ..player import Agent


class RandomAgent(Agent):
    """Chooses uniformly from the legal moves."""

    def __init__(self, agent_id: str):
        super().__init__(agent_id=agent_id)
        self._rng = random.Random()

    def reset(self, room_id: str, player_id: str, role: str | None, seed: int) -> None:
        """Reset deterministic RNG state per room and seat."""
        material = f"{seed}:{room_id}:{self.agent_id}:{player_id}".encode("utf-8")
        derived_seed = int.from_bytes(hashlib.sha256(material).digest()[:8], byteorder="big", signed=False)
        self._rng.seed(derived_seed)

    def act(self, observation: Observation, legal_moves: Sequence[Move]) -> Move:
        """Pick a random legal move."""
        options = list(legal_moves)
        if not options:
            raise AgentExecutionError(self.agent_id, "No legal moves available.")
        return self._rng.choice(options)
