"""Unit tests for per-player records and matchup accumulation."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace

import pytest

from framework.errors import StoreError
from framework.result import DRAW
from framework.store import InMemoryDocumentStore
from omok.omok_game import OmokGame
from omok.omok_state import PlayerProfile, RoomState, RoomStatus
from server.stats import RECENT_OUTCOME_KEYS, StatsLedger, matchup_key, win_rate

HOST = PlayerProfile(uid="alice", display_name="Alice")
GUEST = PlayerProfile(uid="bob", display_name="Bob", photo_url="bob.png")


def _finished_room(winner: str, *, round: int = 1) -> RoomState:
    game = OmokGame()
    room = game.join(game.new_room("ABCD", HOST, created_at=1), GUEST)
    return replace(room, status=RoomStatus.FINISHED, winner=winner, round=round)


def test_win_rate_rounds_half_up() -> None:
    assert win_rate(0, 0) == 0
    assert win_rate(1, 2) == 50
    assert win_rate(1, 3) == 33
    assert win_rate(2, 3) == 67
    assert win_rate(1, 8) == 13
    assert win_rate(5, 5) == 100


def test_host_win_updates_both_players_and_matchup() -> None:
    ledger = StatsLedger(InMemoryDocumentStore())

    assert ledger.record_outcome(_finished_room("alice")) is True

    alice = ledger.player_stats("alice")
    bob = ledger.player_stats("bob")
    assert (alice.wins, alice.losses, alice.draws, alice.total_games, alice.win_rate) == (1, 0, 0, 1, 100)
    assert (bob.wins, bob.losses, bob.draws, bob.total_games, bob.win_rate) == (0, 1, 0, 1, 0)
    assert bob.photo_url == "bob.png"

    matchup = ledger.matchup("bob", "alice")
    assert matchup.players == ("alice", "bob")
    assert matchup.wins_for("alice") == 1
    assert matchup.wins_for("bob") == 0
    assert matchup.total_games == 1


def test_draw_counts_for_both_players() -> None:
    ledger = StatsLedger(InMemoryDocumentStore())

    ledger.record_outcome(_finished_room(DRAW))

    for uid in ("alice", "bob"):
        stats = ledger.player_stats(uid)
        assert stats.draws == 1
        assert stats.total_games == 1
        assert stats.win_rate == 0
    assert ledger.matchup("alice", "bob").draws == 1


def test_unknown_players_read_as_zero() -> None:
    ledger = StatsLedger(InMemoryDocumentStore())

    stats = ledger.player_stats("nobody")
    matchup = ledger.matchup("nobody", "else")

    assert stats.total_games == 0
    assert stats.display_name == "Friend"
    assert matchup.total_games == 0
    assert matchup.wins == {"else": 0, "nobody": 0}


def test_game_key_suppresses_duplicate_triggers() -> None:
    ledger = StatsLedger(InMemoryDocumentStore())
    room = _finished_room("bob")

    assert ledger.record_outcome(room, game_key="game-1") is True
    assert ledger.record_outcome(room, game_key="game-1") is False
    assert ledger.record_outcome(replace(room, round=2), game_key="game-2") is True

    assert ledger.player_stats("bob").wins == 2
    assert ledger.player_stats("alice").losses == 2


def test_concurrent_recording_without_key_counts_every_call() -> None:
    ledger = StatsLedger(InMemoryDocumentStore())
    room = _finished_room("alice")

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(lambda _: ledger.record_outcome(room), range(40)))

    assert all(outcomes)
    alice = ledger.player_stats("alice")
    assert alice.wins == 40
    assert alice.total_games == 40
    assert ledger.player_stats("bob").losses == 40
    assert ledger.matchup("alice", "bob").wins_for("alice") == 40


def test_concurrent_duplicate_triggers_record_once() -> None:
    ledger = StatsLedger(InMemoryDocumentStore())
    room = _finished_room(DRAW)

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(lambda _: ledger.record_outcome(room, game_key="same"), range(16)))

    assert outcomes.count(True) == 1
    assert ledger.player_stats("alice").draws == 1


def test_unfinished_or_foreign_winner_is_rejected() -> None:
    ledger = StatsLedger(InMemoryDocumentStore())
    playing = replace(_finished_room("alice"), status=RoomStatus.PLAYING, winner=None)

    with pytest.raises(ValueError):
        ledger.record_outcome(playing)
    with pytest.raises(ValueError):
        ledger.record_outcome(_finished_room("mallory"))


def test_leaderboard_orders_by_wins_then_rate_then_losses() -> None:
    store = InMemoryDocumentStore()
    ledger = StatsLedger(store)
    carol = PlayerProfile(uid="carol")
    game = OmokGame()

    def finish(host: PlayerProfile, guest: PlayerProfile, winner: str) -> None:
        room = game.join(game.new_room("ROOM", host, created_at=1), guest)
        ledger.record_outcome(replace(room, status=RoomStatus.FINISHED, winner=winner))

    finish(HOST, GUEST, "alice")
    finish(HOST, GUEST, "alice")
    finish(carol, GUEST, "carol")
    finish(carol, GUEST, "carol")
    finish(carol, GUEST, "bob")
    finish(carol, HOST, DRAW)

    board = ledger.leaderboard()

    # alice: 2 wins at 67%; carol: 2 wins at 50%; bob: 1 win.
    assert [entry.uid for entry in board] == ["alice", "carol", "bob"]
    assert [entry.uid for entry in ledger.leaderboard(limit=1)] == ["alice"]


def test_matchup_key_is_seat_independent_and_path_safe() -> None:
    assert matchup_key("b", "a") == matchup_key("a", "b") == "a__b"
    assert "/" not in matchup_key("team/one", "two")


def test_report_lists_players_and_matchups() -> None:
    ledger = StatsLedger(InMemoryDocumentStore())
    ledger.record_outcome(_finished_room("alice"))

    report = ledger.report()

    assert [player["uid"] for player in report["players"]] == ["alice", "bob"]
    assert report["matchups"] == [{"players": ["alice", "bob"], "wins": {"alice": 1, "bob": 0}, "draws": 0, "total_games": 1}]


class _FailingOnceStore(InMemoryDocumentStore):
    """Raises StoreError the first time a transaction targets `fail_path`."""

    def __init__(self, fail_path: str):
        super().__init__()
        self.fail_path = fail_path
        self.failed = False

    def transaction(self, path, update_fn):
        if path == self.fail_path and not self.failed:
            self.failed = True
            raise StoreError(f"transient failure writing {path}")
        return super().transaction(path, update_fn)


@pytest.mark.parametrize("fail_path", ["stats/alice", "stats/bob", "matchups/alice__bob"])
def test_interrupted_recording_completes_once_on_retry(fail_path: str) -> None:
    store = _FailingOnceStore(fail_path)
    ledger = StatsLedger(store)
    room = _finished_room("alice")

    with pytest.raises(StoreError):
        ledger.record_outcome(room, game_key="game-1")
    assert store.get("outcomes/game-1") is None

    assert ledger.record_outcome(room, game_key="game-1") is True
    assert ledger.record_outcome(room, game_key="game-1") is False

    assert ledger.player_stats("alice").wins == 1
    assert ledger.player_stats("alice").total_games == 1
    assert ledger.player_stats("bob").losses == 1
    assert ledger.matchup("alice", "bob").wins_for("alice") == 1


def test_applied_game_keys_are_bounded_per_record() -> None:
    store = InMemoryDocumentStore()
    ledger = StatsLedger(store)
    room = _finished_room("alice")

    for n in range(RECENT_OUTCOME_KEYS + 5):
        ledger.record_outcome(replace(room, round=n + 1), game_key=f"game-{n}")

    applied = store.get("stats/alice")["applied_outcomes"]
    assert len(applied) == RECENT_OUTCOME_KEYS
    assert applied[-1] == f"game-{RECENT_OUTCOME_KEYS + 4}"
    assert ledger.player_stats("alice").wins == RECENT_OUTCOME_KEYS + 5
    assert "applied_outcomes" not in ledger.player_stats("alice").to_dict()
