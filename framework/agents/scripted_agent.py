"""Scripted agent: a fixed move list or a policy callable."""

from __future__ import annotations

from collections import deque
from typing import Any, Callable, Iterable, Sequence

from ..errors import AgentExecutionError
from ..move import Move
from ..player import Agent


class ScriptedAgent(Agent):
    """Plays queued moves in order, then falls back to `policy` if given."""

    def __init__(
        self,
        agent_id: str,
        policy: Callable[[Any, Sequence[Move]], Move] | None = None,
        moves: Iterable[Move] = (),
    ):
        super().__init__(agent_id=agent_id)
        self.policy = policy
        self._script = list(moves)
        self._queue: deque[Move] = deque(self._script)

    def reset(self, room_id: str, player_id: str, role: str | None, seed: int) -> None:
        self._queue = deque(self._script)

    def act(self, observation: Any, legal_moves: Sequence[Move]) -> Move:
        """Return the next scripted move, or delegate to the policy."""
        if self._queue:
            return self._queue.popleft()
        if self.policy is None:
            raise AgentExecutionError(self.agent_id, "Script exhausted and no policy configured.")
        return self.policy(observation, legal_moves)
