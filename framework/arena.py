"""Arena orchestration: seeded series of rematches in one room."""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

from .player import Agent
from .result import DRAW, GameResult
from .runner import MatchRunner, RunnerConfig
from .serialize import json_dumps

@dataclass(frozen=True)
class ArenaSummary:
    """Aggregated output from a series of games."""

    results: list[GameResult]
    wins: dict[str, int]
    win_rates: dict[str, float]
    draws: int
    leaderboard: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable summary."""
        return {
            "results": [result.to_dict() for result in self.results],
            "wins": dict(self.wins),
            "win_rates": dict(self.win_rates),
            "draws": self.draws,
            "leaderboard": list(self.leaderboard),
        }


class Arena:
    """High-level interface for running many games."""

    def __init__(self, runner: MatchRunner):
        self.runner = runner
        self.last_events: list[Any] = []

    def run_match(
        self,
        host: Any,
        guest: Any,
        agents: Mapping[str, Agent],
        seed: int,
        *,
        room_id: str | None = None,
    ) -> GameResult:
        """Run one game and return its `GameResult`."""
        run = self.runner.run_match(host, guest, agents, seed, room_id=room_id)
        self.last_events = run.events
        return run.result

    def run_series(
        self,
        host: Any,
        guest: Any,
        agents_factory: Mapping[str, Agent] | Callable[[int], Mapping[str, Agent]],
        seeds: Sequence[int],
        *,
        swap_seats: bool = False,
    ) -> ArenaSummary:
        """Play one game per seed, rematching in the same room each time.

        With `swap_seats`, every other game opens a fresh room hosted by the
        other player so both get to move first.
        """
        results: list[GameResult] = []
        rooms: dict[str, str] = {}
        for offset, seed in enumerate(seeds):
            first, second = (guest, host) if swap_seats and offset % 2 else (host, guest)
            agents = agents_factory(seed) if callable(agents_factory) else agents_factory
            result = self.run_match(first, second, agents, seed, room_id=rooms.get(first.uid))
            rooms[first.uid] = result.room_id
            results.append(result)
        return self._summarize_results(results)

    def _summarize_results(self, results: Sequence[GameResult]) -> ArenaSummary:
        wins: dict[str, int] = {}
        draws = 0
        for result in results:
            if result.winner is None or result.winner == DRAW:
                draws += 1
                continue
            wins[result.winner] = wins.get(result.winner, 0) + 1
        total = len(results) if results else 1
        win_rates = {winner: count / total for winner, count in wins.items()}
        leaderboard: list[dict[str, Any]] = []
        ledger = getattr(self.runner.service, "ledger", None)
        if ledger is not None:
            leaderboard = [stats.to_dict() for stats in ledger.leaderboard()]
        return ArenaSummary(
            results=list(results),
            wins=wins,
            win_rates=win_rates,
            draws=draws,
            leaderboard=leaderboard,
        )


def _build_agent(kind: str, player_id: str) -> Agent:
    from .agents.random_agent import RandomAgent

    if kind.strip().lower() != "random":
        raise ValueError("Only 'random' is currently supported in CLI agent mapping.")
    return RandomAgent(f"random-{player_id}")


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint for batch game execution."""
    parser = argparse.ArgumentParser(description="Run omok games between baseline agents.")
    parser.add_argument("--num-games", type=int, default=1)
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--max-turns", type=int, default=400)
    parser.add_argument("--board-size", type=int, default=None)
    parser.add_argument("--win-length", type=int, default=None)
    parser.add_argument("--host", type=str, default="host")
    parser.add_argument("--guest", type=str, default="guest")
    parser.add_argument("--host-agent", type=str, default="random")
    parser.add_argument("--guest-agent", type=str, default="random")
    parser.add_argument("--swap-seats", action="store_true")
    parser.add_argument("--store-path", type=str, default=None)
    parser.add_argument("--log-dir", type=str, default=None)
    parser.add_argument("--output", type=str, default=None)
    parser.add_argument("--render", action="store_true", help="Print the final board of each room.")
    args = parser.parse_args(argv)

    from dataclasses import replace

    from omok.omok_state import PlayerProfile
    from server.session import RoomService

    from .config import EngineSettings, load_dotenv

    load_dotenv()
    settings = EngineSettings.from_env()
    overrides: dict[str, Any] = {}
    if args.board_size is not None:
        overrides["board_size"] = args.board_size
    if args.win_length is not None:
        overrides["win_length"] = args.win_length
    if args.store_path is not None:
        overrides["store_path"] = Path(args.store_path)
    if overrides:
        settings = replace(settings, **overrides)
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    service = RoomService(settings=settings)
    host = PlayerProfile(uid=args.host, display_name=args.host)
    guest = PlayerProfile(uid=args.guest, display_name=args.guest)
    agents = {
        host.uid: _build_agent(args.host_agent, host.uid),
        guest.uid: _build_agent(args.guest_agent, guest.uid),
    }

    seeds = [args.seed + offset for offset in range(args.num_games)]
    runner = MatchRunner(service, RunnerConfig(max_turns=args.max_turns, event_log_dir=args.log_dir))
    arena = Arena(runner=runner)
    summary = arena.run_series(host, guest, agents, seeds, swap_seats=args.swap_seats)

    if args.render:
        for room_id in sorted({result.room_id for result in summary.results}):
            room = service.directory.find_room(room_id)
            if room is not None:
                print(service.game.render(room))

    summary_dict = summary.to_dict()
    print(json_dumps(summary_dict, indent=2))

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json_dumps(summary_dict, indent=2), encoding="utf-8")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
