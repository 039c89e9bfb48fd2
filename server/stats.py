"""Per-player records and head-to-head tallies, accumulated atomically."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Mapping
from urllib.parse import quote

from framework.result import DRAW
from framework.store import Document, DocumentStore
from omok.omok_state import DEFAULT_DISPLAY_NAME, PlayerProfile, RoomState, RoomStatus

logger = logging.getLogger(__name__)

PLAYER_STATS_COLLECTION = "stats"
MATCHUP_COLLECTION = "matchups"
OUTCOME_COLLECTION = "outcomes"

WINS = "wins"
LOSSES = "losses"
DRAWS = "draws"

APPLIED_OUTCOMES = "applied_outcomes"
RECENT_OUTCOME_KEYS = 32


def _utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


def _key(uid: str) -> str:
    return quote(uid, safe="")


def _already_applied(entry: Mapping[str, Any] | None, game_key: str | None) -> bool:
    return game_key is not None and entry is not None and game_key in entry.get(APPLIED_OUTCOMES, [])


def _mark_applied(entry: Document, game_key: str | None) -> Document:
    """Remember the most recent game keys folded into a record."""
    if game_key is not None:
        applied = list(entry.get(APPLIED_OUTCOMES, []))
        applied.append(game_key)
        entry[APPLIED_OUTCOMES] = applied[-RECENT_OUTCOME_KEYS:]
    return entry


def win_rate(wins: int, total_games: int) -> int:
    """Integer win percentage rounded half-up; zero games means zero."""
    if total_games <= 0:
        return 0
    return (200 * wins + total_games) // (2 * total_games)


def canonical_pair(uid_a: str, uid_b: str) -> tuple[str, str]:
    """Order two identities so a pair maps to one record regardless of seat."""
    first, second = sorted((uid_a, uid_b))
    return first, second


def matchup_key(uid_a: str, uid_b: str) -> str:
    first, second = canonical_pair(uid_a, uid_b)
    return f"{_key(first)}__{_key(second)}"


@dataclass(frozen=True)
class PlayerStats:
    """Aggregate record for one identity."""

    uid: str
    display_name: str = DEFAULT_DISPLAY_NAME
    photo_url: str | None = None
    wins: int = 0
    losses: int = 0
    draws: int = 0
    total_games: int = 0
    win_rate: int = 0
    last_played: str | None = None

    @classmethod
    def from_document(cls, uid: str, data: Mapping[str, Any] | None) -> "PlayerStats":
        if not data:
            return cls(uid=uid)
        return cls(
            uid=uid,
            display_name=str(data.get("display_name") or DEFAULT_DISPLAY_NAME),
            photo_url=data.get("photo_url"),
            wins=int(data.get(WINS, 0)),
            losses=int(data.get(LOSSES, 0)),
            draws=int(data.get(DRAWS, 0)),
            total_games=int(data.get("total_games", 0)),
            win_rate=int(data.get("win_rate", 0)),
            last_played=data.get("last_played"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "uid": self.uid,
            "display_name": self.display_name,
            "photo_url": self.photo_url,
            "wins": self.wins,
            "losses": self.losses,
            "draws": self.draws,
            "total_games": self.total_games,
            "win_rate": self.win_rate,
            "last_played": self.last_played,
        }


@dataclass(frozen=True)
class MatchupRecord:
    """Head-to-head tally for one unordered pair of identities."""

    players: tuple[str, str]
    wins: dict[str, int] = field(default_factory=dict)
    draws: int = 0

    @classmethod
    def from_document(cls, uid_a: str, uid_b: str, data: Mapping[str, Any] | None) -> "MatchupRecord":
        players = canonical_pair(uid_a, uid_b)
        raw_wins = (data or {}).get(WINS, {})
        wins = {uid: int(raw_wins.get(uid, 0)) for uid in players}
        return cls(players=players, wins=wins, draws=int((data or {}).get(DRAWS, 0)))

    def wins_for(self, uid: str) -> int:
        return int(self.wins.get(uid, 0))

    @property
    def total_games(self) -> int:
        return sum(self.wins.values()) + self.draws

    def to_dict(self) -> dict[str, Any]:
        return {
            "players": list(self.players),
            "wins": dict(self.wins),
            "draws": self.draws,
            "total_games": self.total_games,
        }


class StatsLedger:
    """Store-backed ledger updated once per concluded game.

    Each record is changed with its own store transaction, so concurrent
    recorders never lose increments. Suppressing duplicate triggers for the
    same game is done by passing a `game_key`: every record remembers the
    keys it has absorbed, and `outcomes/<game_key>` is created once all
    records are updated. A call that fails part way can simply be repeated.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def record_outcome(self, room: RoomState, *, game_key: str | None = None) -> bool:
        """Apply a finished room's result to both players and their matchup.

        Returns False when another call already completed `game_key`.
        """
        if room.status is not RoomStatus.FINISHED or room.winner is None:
            raise ValueError(f"Room {room.room_id} has not finished.")
        if room.guest is None:
            raise ValueError(f"Room {room.room_id} has no guest.")

        host, guest = room.host, room.guest
        if room.winner == DRAW:
            host_field, guest_field = DRAWS, DRAWS
        elif room.winner == host.uid:
            host_field, guest_field = WINS, LOSSES
        elif room.winner == guest.uid:
            host_field, guest_field = LOSSES, WINS
        else:
            raise ValueError(f"Winner {room.winner!r} is not seated in room {room.room_id}.")

        outcome_path = f"{OUTCOME_COLLECTION}/{game_key}"
        if game_key is not None and self.store.get(outcome_path) is not None:
            logger.debug("outcome %s for room %s already recorded", game_key, room.room_id)
            return False

        self._accumulate_player(host, host_field, game_key)
        self._accumulate_player(guest, guest_field, game_key)
        self._accumulate_matchup(host.uid, guest.uid, room.winner, game_key)

        # The marker is written last so a failed write above can be retried.
        if game_key is not None:
            completed = self.store.create(
                outcome_path,
                {
                    "room_id": room.room_id,
                    "round": room.round,
                    "winner": room.winner,
                    "recorded_at": _utc_now_iso(),
                },
            )
            if not completed:
                logger.debug("outcome %s for room %s completed concurrently", game_key, room.room_id)
                return False
        logger.info(
            "recorded room=%s round=%s winner=%s",
            room.room_id,
            room.round,
            room.winner,
        )
        return True

    def player_stats(self, uid: str) -> PlayerStats:
        return PlayerStats.from_document(uid, self.store.get(f"{PLAYER_STATS_COLLECTION}/{_key(uid)}"))

    def matchup(self, uid_a: str, uid_b: str) -> MatchupRecord:
        return MatchupRecord.from_document(uid_a, uid_b, self.store.get(f"{MATCHUP_COLLECTION}/{matchup_key(uid_a, uid_b)}"))

    def leaderboard(self, limit: int | None = None) -> list[PlayerStats]:
        """Players ordered by wins, then win rate, then fewest losses."""
        entries = [
            PlayerStats.from_document(str(document.get("uid", key)), document)
            for key, document in self.store.list(PLAYER_STATS_COLLECTION)
        ]
        entries.sort(key=lambda stats: (-stats.wins, -stats.win_rate, stats.losses, stats.uid))
        return entries[:limit] if limit is not None else entries

    def report(self) -> dict[str, Any]:
        """Return every player record and matchup as plain data."""
        matchups = []
        for _, document in self.store.list(MATCHUP_COLLECTION):
            players = document.get("players") or []
            if len(players) != 2:
                continue
            matchups.append(MatchupRecord.from_document(players[0], players[1], document).to_dict())
        matchups.sort(key=lambda record: record["players"])
        return {
            "generated_at": _utc_now_iso(),
            "players": [stats.to_dict() for stats in self.leaderboard()],
            "matchups": matchups,
        }

    def _accumulate_player(self, profile: PlayerProfile, counter: str, game_key: str | None = None) -> None:
        played_at = _utc_now_iso()

        def bump(current: Document | None) -> Document | None:
            if _already_applied(current, game_key):
                return None
            entry = current or {
                "uid": profile.uid,
                WINS: 0,
                LOSSES: 0,
                DRAWS: 0,
                "total_games": 0,
                "win_rate": 0,
            }
            entry[counter] = int(entry.get(counter, 0)) + 1
            entry["total_games"] = int(entry.get("total_games", 0)) + 1
            entry["win_rate"] = win_rate(int(entry.get(WINS, 0)), entry["total_games"])
            entry["display_name"] = profile.display_name
            entry["photo_url"] = profile.photo_url
            entry["last_played"] = played_at
            return _mark_applied(entry, game_key)

        self.store.transaction(f"{PLAYER_STATS_COLLECTION}/{_key(profile.uid)}", bump)

    def _accumulate_matchup(self, uid_a: str, uid_b: str, winner: str, game_key: str | None = None) -> None:
        players = canonical_pair(uid_a, uid_b)

        def bump(current: Document | None) -> Document | None:
            if _already_applied(current, game_key):
                return None
            entry = current or {"players": list(players), WINS: {uid: 0 for uid in players}, DRAWS: 0}
            if winner == DRAW:
                entry[DRAWS] = int(entry.get(DRAWS, 0)) + 1
            else:
                wins = entry.setdefault(WINS, {})
                wins[winner] = int(wins.get(winner, 0)) + 1
            return _mark_applied(entry, game_key)

        self.store.transaction(f"{MATCHUP_COLLECTION}/{matchup_key(uid_a, uid_b)}", bump)
