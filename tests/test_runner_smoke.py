"""Smoke tests for the runner and arena driving agents through live rooms."""

from __future__ import annotations

import json
import random
from pathlib import Path

import pytest

from framework.agents.random_agent import RandomAgent
from framework.agents.scripted_agent import ScriptedAgent
from framework.arena import Arena, main
from framework.config import EngineSettings
from framework.errors import AgentExecutionError, ConfigurationError, IllegalMoveError
from framework.events import EventType, read_jsonl
from framework.result import TerminationReason
from framework.runner import MatchRunner, RunnerConfig
from framework.store import InMemoryDocumentStore
from omok.omok_moves import PlaceStone
from omok.omok_state import PlayerProfile, RoomStatus
from server.session import RoomService

HOST = PlayerProfile(uid="host")
GUEST = PlayerProfile(uid="guest")


def _service() -> RoomService:
    return RoomService(InMemoryDocumentStore(), settings=EngineSettings(), rng=random.Random(5))


def _random_agents() -> dict[str, RandomAgent]:
    return {"host": RandomAgent("random-host"), "guest": RandomAgent("random-guest")}


def test_three_seeded_games_complete_and_feed_the_ledger() -> None:
    service = _service()
    arena = Arena(runner=MatchRunner(service))

    summary = arena.run_series(HOST, GUEST, lambda _: _random_agents(), seeds=[11, 12, 13])

    assert len(summary.results) == 3
    assert len({result.room_id for result in summary.results}) == 1
    assert [result.round for result in summary.results] == [1, 2, 3]
    for result in summary.results:
        assert result.game_name == "omok"
        assert result.termination_reason in {TerminationReason.NORMAL_WIN, TerminationReason.DRAW}
        assert result.event_count > 0

    total = service.player_stats("host").total_games
    assert total == 3
    assert sum(summary.wins.values()) + summary.draws == 3
    assert {entry["uid"] for entry in summary.leaderboard} == {"host", "guest"}


def test_same_seed_replays_the_same_game() -> None:
    first = MatchRunner(_service()).run_match(HOST, GUEST, _random_agents(), seed=42)
    second = MatchRunner(_service()).run_match(HOST, GUEST, _random_agents(), seed=42)

    def moves(run) -> list[int]:
        return [event.payload["index"] for event in run.events if event.event_type is EventType.MOVE]

    assert first.result.room_id == second.result.room_id
    assert moves(first) == moves(second)
    assert first.result.winner == second.result.winner


def test_swap_seats_alternates_hosts() -> None:
    service = _service()
    arena = Arena(runner=MatchRunner(service))

    summary = arena.run_series(HOST, GUEST, _random_agents(), seeds=[1, 2, 3, 4], swap_seats=True)

    hosts = [result.host_id for result in summary.results]
    assert hosts == ["host", "guest", "host", "guest"]
    assert len({result.room_id for result in summary.results}) == 2


def test_scripted_agents_play_a_known_win(tmp_path: Path) -> None:
    service = _service()
    agents = {
        "host": ScriptedAgent("scripted-host", moves=[PlaceStone(index) for index in range(5)]),
        "guest": ScriptedAgent("scripted-guest", moves=[PlaceStone(index) for index in range(10, 14)]),
    }
    runner = MatchRunner(service, RunnerConfig(event_log_dir=tmp_path))

    run = runner.run_match(HOST, GUEST, agents, seed=0)

    assert run.result.winner == "host"
    assert run.result.winning_line == (0, 1, 2, 3, 4)
    assert run.result.log_path is not None
    logged = read_jsonl(run.result.log_path)
    assert [event.event_type for event in logged] == [event.event_type for event in run.events]
    assert logged[-1].event_type is EventType.STATS_RECORDED


def test_max_turns_stops_an_unfinished_game() -> None:
    service = _service()
    runner = MatchRunner(service, RunnerConfig(max_turns=4))

    run = runner.run_match(HOST, GUEST, _random_agents(), seed=3)

    assert run.result.termination_reason is TerminationReason.MAX_TURNS
    assert run.result.winner is None
    assert service.get_room(run.result.room_id).status is RoomStatus.PLAYING


def test_illegal_agent_move_raises_after_retries() -> None:
    service = _service()
    agents = {
        "host": ScriptedAgent("scripted-host", moves=[PlaceStone(0), PlaceStone(0)]),
        "guest": ScriptedAgent("scripted-guest", moves=[PlaceStone(0)]),
    }

    with pytest.raises(IllegalMoveError):
        MatchRunner(service).run_match(HOST, GUEST, agents, seed=0)


def test_agent_without_moves_raises_execution_error() -> None:
    service = _service()
    agents = {"host": ScriptedAgent("empty-host"), "guest": RandomAgent("random-guest")}

    with pytest.raises(AgentExecutionError):
        MatchRunner(service).run_match(HOST, GUEST, agents, seed=0)


def test_missing_agent_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        MatchRunner(_service()).run_match(HOST, GUEST, {"host": RandomAgent("random-host")}, seed=0)


def test_arena_cli_prints_summary(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    output = tmp_path / "summary.json"

    exit_code = main(["--num-games", "2", "--seed", "7", "--output", str(output), "--board-size", "6", "--win-length", "4"])

    assert exit_code == 0
    summary = json.loads(output.read_text(encoding="utf-8"))
    assert len(summary["results"]) == 2
    assert summary["draws"] + sum(summary["wins"].values()) == 2
    assert '"leaderboard"' in capsys.readouterr().out
