"""Drives two agents through a live room, one client session per seat."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping, Sequence

from .errors import AgentExecutionError, ConfigurationError, IllegalMoveError
from .events import RoomEvent, write_jsonl
from .game import Game, PlayerId
from .move import Move
from .observation import Observation
from .player import Agent
from .result import GameResult, TerminationReason

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunnerConfig:
    """Runtime configuration for match execution."""

    max_turns: int = 400
    max_illegal_retries: int = 0
    event_log_dir: str | Path | None = None


@dataclass(frozen=True)
class MatchRun:
    """Complete execution artifact for one game."""

    result: GameResult
    events: list[RoomEvent]


class MatchRunner:
    """Plays games between agents through a room service.

    The service must offer `game`, `create_room(profile)`,
    `attach(room_id, profile)` and `room_events(room_id)`. Each seat gets
    its own attached session, so moves travel the same path as any other
    client's: validated, committed to the store, and pushed back to both
    sessions.
    """

    def __init__(self, service: Any, config: RunnerConfig | None = None):
        self.service = service
        self.config = config or RunnerConfig()

    @property
    def game(self) -> Game[Any, Any, Any, Any]:
        return self.service.game

    def run_match(
        self,
        host: Any,
        guest: Any,
        agents: Mapping[PlayerId, Agent],
        seed: int = 0,
        *,
        room_id: str | None = None,
        log_path: str | Path | None = None,
    ) -> MatchRun:
        """Play one game to completion and return the result plus its events.

        Passing the `room_id` of a finished room plays a rematch there.
        """
        self._validate_agents([host.uid, guest.uid], agents)
        if room_id is None:
            room_id = self.service.create_room(host).room_id
        start_index = len(self.service.room_events(room_id))

        sessions = {
            host.uid: self.service.attach(room_id, host),
            guest.uid: self.service.attach(room_id, guest),
        }
        watcher = sessions[host.uid]
        turn = 0
        forced: TerminationReason | None = None
        try:
            if watcher.room is not None and self.game.is_terminal(watcher.room):
                watcher.restart()
            for player_id, session in sessions.items():
                agents[player_id].reset(room_id, player_id, session.role, seed)

            while True:
                if watcher.ended or watcher.room is None:
                    forced = TerminationReason.ROOM_DELETED
                    break
                state = watcher.room
                if self.game.is_terminal(state):
                    break
                if turn >= self.config.max_turns:
                    forced = TerminationReason.MAX_TURNS
                    break

                player_id = self.game.current_player(state)
                if player_id not in sessions:
                    raise ConfigurationError(f"Room {room_id} is waiting on unknown player {player_id!r}.")
                session = sessions[player_id]
                move = self._choose_move(
                    agent=agents[player_id],
                    player_id=player_id,
                    state=state,
                    observation=session.observation(),
                    legal_moves=session.legal_moves(),
                )
                session.play(move)
                turn += 1

            if forced is None:
                result = self.game.outcome(watcher.room)
            else:
                result = GameResult(
                    room_id=room_id,
                    game_name=self.game.game_name,
                    round=watcher.room.round if watcher.room is not None else 1,
                    winner=None,
                    termination_reason=forced,
                    host_id=host.uid,
                    guest_id=guest.uid,
                    turns=turn,
                )
        finally:
            for session in sessions.values():
                session.close()

        history = self.service.room_events(room_id)[start_index:]
        return self._finish(agents=agents, result=result, history=history, log_path=log_path)

    def _choose_move(
        self,
        *,
        agent: Agent,
        player_id: PlayerId,
        state: Any,
        observation: Observation,
        legal_moves: Sequence[Move],
    ) -> Move:
        attempt = 0
        while True:
            try:
                move = agent.act(observation, legal_moves)
            except AgentExecutionError:
                raise
            except Exception as exc:
                raise AgentExecutionError(player_id, f"Agent act() failed: {exc}") from exc

            legal, reason = self.game.is_legal(state, player_id, move)
            if legal:
                return move

            error = IllegalMoveError(player_id, move, reason)
            logger.warning("agent %s proposed an illegal move: %s", agent.agent_id, reason)
            agent.on_illegal_move(error, observation)
            attempt += 1
            if attempt > self.config.max_illegal_retries:
                raise error

    def _finish(
        self,
        *,
        agents: Mapping[PlayerId, Agent],
        result: GameResult,
        history: list[RoomEvent],
        log_path: str | Path | None,
    ) -> MatchRun:
        resolved_log_path = self._resolve_log_path(log_path=log_path, result=result)
        final_result = replace(
            result,
            event_count=len(history),
            log_path=str(resolved_log_path) if resolved_log_path is not None else None,
        )
        if resolved_log_path is not None:
            write_jsonl(resolved_log_path, history)

        for agent in agents.values():
            try:
                agent.on_game_end(final_result, history)
            except Exception:
                logger.exception("on_game_end failed for agent %s", agent.agent_id)
        return MatchRun(result=final_result, events=history)

    def _resolve_log_path(self, *, log_path: str | Path | None, result: GameResult) -> Path | None:
        if log_path is not None:
            return Path(log_path)
        if self.config.event_log_dir is None:
            return None
        return Path(self.config.event_log_dir) / f"{result.room_id}-r{result.round}.jsonl"

    def _validate_agents(self, player_ids: Sequence[PlayerId], agents: Mapping[PlayerId, Agent]) -> None:
        if len(set(player_ids)) != len(player_ids):
            raise ConfigurationError("Host and guest must be different players.")
        missing = [player_id for player_id in player_ids if player_id not in agents]
        if missing:
            raise ConfigurationError(f"Missing agents for players: {missing}")
