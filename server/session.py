"""Room lifecycle over a shared document store, plus per-client attachments."""

from __future__ import annotations

import logging
import random
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from framework.config import EngineSettings, RestartPolicy
from framework.errors import (
    DocumentNotFoundError,
    IllegalMoveError,
    NotAllowedError,
    SessionNotFoundError,
    StoreError,
)
from framework.events import EventType, RoomEvent, append_jsonl
from framework.serialize import fingerprint, to_serializable
from framework.store import Document, DocumentStore, InMemoryDocumentStore, Unsubscribe
from omok.omok_game import SPECTATOR, OmokGame
from omok.omok_moves import PlaceStone
from omok.omok_observation import OmokObservation
from omok.omok_state import Mark, PlayerProfile, RoomState, RoomStatus
from server.rooms import RoomDirectory, normalize_room_code, room_path
from server.stats import MatchupRecord, PlayerStats, StatsLedger

logger = logging.getLogger(__name__)

RoomCallback = Callable[[RoomState | None], None]
SessionCallback = Callable[["RoomSession"], None]

# Deleted rooms whose in-memory history is still served.
RETAINED_DELETED_ROOMS = 64


@dataclass(frozen=True)
class JoinResult:
    """What a join attempt left the caller with."""

    room: RoomState
    role: str
    joined: bool


def _move_index(move: int | PlaceStone) -> int:
    if isinstance(move, PlaceStone):
        return move.index
    return move


class RoomService:
    """Every room operation a client can perform, committed through the store.

    Joins and moves are read-validate-commit transactions; restart is a
    field merge and deletion a removal, each gated by an identity check.
    Room events are kept in memory per room and, when configured, appended
    to `<event_log_dir>/<room_id>.jsonl`.
    """

    def __init__(
        self,
        store: DocumentStore | None = None,
        *,
        settings: EngineSettings | None = None,
        game: OmokGame | None = None,
        directory: RoomDirectory | None = None,
        ledger: StatsLedger | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.store = store or InMemoryDocumentStore(path=self.settings.store_path)
        self.game = game or OmokGame(board_size=self.settings.board_size, win_length=self.settings.win_length)
        self.directory = directory or RoomDirectory(
            self.store,
            self.game,
            code_length=self.settings.room_code_length,
            max_attempts=self.settings.room_code_attempts,
            rng=rng,
            clock=clock,
        )
        self.ledger = ledger or StatsLedger(self.store)
        self.retained_deleted_rooms = RETAINED_DELETED_ROOMS
        self._events: dict[str, list[RoomEvent]] = {}
        self._deleted: deque[str] = deque()
        self._events_lock = threading.Lock()

    def create_room(self, host: PlayerProfile, *, now: int | None = None) -> RoomState:
        room = self.directory.create_room(host, now=now)
        with self._events_lock:
            # A reused code starts a fresh history.
            self._events.pop(room.room_id, None)
            if room.room_id in self._deleted:
                self._deleted.remove(room.room_id)
        self._record(room, EventType.ROOM_CREATED, {"host": host.to_dict()})
        return room

    def list_waiting_rooms(self, excluding: str | None = None) -> list[RoomState]:
        return self.directory.list_waiting_rooms(excluding=excluding)

    def get_room(self, room_id: str) -> RoomState:
        return self.directory.get_room(room_id)

    def join_room(self, room_id: str, player: PlayerProfile) -> JoinResult:
        """Claim the guest seat if it is still free.

        The claim only commits when the stored room is waiting with no
        guest, so of two simultaneous joiners exactly one is seated; the
        other gets the room back with a spectator role.
        """
        code = normalize_room_code(room_id)
        room = self.get_room(code)
        seat = room.seat_of(player.uid)
        if seat is not None:
            return JoinResult(room=room, role=seat, joined=False)

        def claim(current: Document | None) -> Document | None:
            if current is None:
                raise SessionNotFoundError(code)
            state = RoomState.from_dict(current)
            if state.status is not RoomStatus.WAITING or state.guest is not None or state.is_host(player.uid):
                return None
            return self.game.join(state, player).to_dict()

        result = self.store.transaction(room_path(code), claim)
        if result.value is None:
            raise SessionNotFoundError(code)
        state = RoomState.from_dict(result.value)
        if result.committed:
            logger.info("%s joined room %s as guest", player.uid, code)
            self._record(state, EventType.GUEST_JOINED, {"guest": player.to_dict()})
            return JoinResult(room=state, role="guest", joined=True)

        role = state.seat_of(player.uid) or SPECTATOR
        if role == SPECTATOR:
            logger.info("%s could not join room %s (%s)", player.uid, code, state.status.value)
            self._record(state, EventType.JOIN_REJECTED, {"player_id": player.uid, "status": state.status.value})
        return JoinResult(room=state, role=role, joined=False)

    def submit_move(self, room_id: str, player_id: str, move: int | PlaceStone) -> RoomState:
        """Place the player's stone and commit the next room state.

        The move is checked against the last known room first, then again
        inside the commit against whatever is stored at that moment.
        """
        code = normalize_room_code(room_id)
        index = _move_index(move)
        room = self.get_room(code)
        try:
            self.game.submit_move(room, player_id, index)

            def commit(current: Document | None) -> Document:
                if current is None:
                    raise SessionNotFoundError(code)
                return self.game.submit_move(RoomState.from_dict(current), player_id, index).to_dict()

            result = self.store.transaction(room_path(code), commit)
        except IllegalMoveError as exc:
            logger.warning("rejected move in room %s: %s", code, exc)
            self._record(room, EventType.ILLEGAL_MOVE, {"player_id": player_id, "index": index, "error": exc.to_dict()})
            raise

        state = RoomState.from_dict(result.value or {})
        self._record(
            state,
            EventType.MOVE,
            {"player_id": player_id, "index": index, "mark": state.board[index].value},
        )
        if self.game.is_terminal(state):
            self._conclude(state)
        return state

    def restart(self, room_id: str, player_id: str) -> RoomState:
        """Reset a finished room for another round in place."""
        code = normalize_room_code(room_id)
        room = self.get_room(code)
        if self.settings.restart_policy is RestartPolicy.HOST and not room.is_host(player_id):
            raise NotAllowedError(f"Only the host can restart room {code}.")
        if not room.is_participant(player_id):
            raise NotAllowedError(f"{player_id} is not seated in room {code}.")
        fresh = self.game.restart(room, player_id)
        # Credit the round being replaced if its commit-time recording failed.
        self.record_outcome(room)
        try:
            stored = self.store.update(
                room_path(code),
                {
                    "board": fresh.board.to_list(),
                    "current_turn": fresh.current_turn,
                    "status": fresh.status.value,
                    "winner": None,
                    "round": fresh.round,
                },
            )
        except DocumentNotFoundError as exc:
            raise SessionNotFoundError(code) from exc
        state = RoomState.from_dict(stored)
        logger.info("room %s restarted by %s (round %d)", code, player_id, state.round)
        self._record(state, EventType.RESTART, {"player_id": player_id})
        return state

    def delete_room(self, room_id: str, player_id: str) -> None:
        """Remove a room. Only its host may do this."""
        code = normalize_room_code(room_id)
        room = self.get_room(code)
        if not room.is_host(player_id):
            raise NotAllowedError(f"Only the host can delete room {code}.")
        self.directory.remove_room(code)
        logger.info("room %s deleted by %s", code, player_id)
        self._record(room, EventType.ROOM_DELETED, {"player_id": player_id})
        with self._events_lock:
            self._deleted.append(code)
            while len(self._deleted) > self.retained_deleted_rooms:
                self._events.pop(self._deleted.popleft(), None)

    def subscribe(self, room_id: str, callback: RoomCallback) -> Unsubscribe:
        """Push every committed room state (None once deleted) to `callback`."""

        def deliver(document: Document | None) -> None:
            callback(RoomState.from_dict(document) if document is not None else None)

        return self.store.subscribe(room_path(room_id), deliver)

    def attach(self, room_id: str, player: PlayerProfile, **kwargs: Any) -> "RoomSession":
        return RoomSession.attach(self, room_id, player, **kwargs)

    def game_key(self, room: RoomState) -> str:
        """Identify one concluded game by its room, round and final board."""
        return fingerprint(room.room_id, room.round, room.board.to_list(), room.winner)

    def record_outcome(self, room: RoomState) -> bool:
        """Credit a finished room to the ledger unless it was credited already."""
        recorded = self.ledger.record_outcome(room, game_key=self.game_key(room))
        if recorded:
            self._record(room, EventType.STATS_RECORDED, {"winner": room.winner})
        return recorded

    def view(self, room: RoomState | str, player_id: str, *, last_move: int | None = None) -> dict[str, Any]:
        """Build the JSON view of a room for one player."""
        state = self.get_room(room) if isinstance(room, str) else room
        observation: OmokObservation = self.game.observation(state, player_id, last_move=last_move)
        payload: dict[str, Any] = {
            "room_id": state.room_id,
            "player_id": player_id,
            "observation": observation.to_dict(),
            "legal_moves": [move.index for move in self.game.legal_moves(state, player_id)],
            "room": state.to_dict(),
        }
        if self.game.is_terminal(state):
            payload["result"] = self.game.outcome(state).to_dict()
        return to_serializable(payload)

    def events(self, room_id: str) -> list[dict[str, Any]]:
        code = normalize_room_code(room_id)
        with self._events_lock:
            events = list(self._events.get(code, []))
        if not events and self.directory.find_room(code) is None:
            raise SessionNotFoundError(code)
        return [event.to_dict() for event in events]

    def room_events(self, room_id: str) -> list[RoomEvent]:
        with self._events_lock:
            return list(self._events.get(normalize_room_code(room_id), []))

    def player_stats(self, uid: str) -> PlayerStats:
        return self.ledger.player_stats(uid)

    def matchup(self, uid_a: str, uid_b: str) -> MatchupRecord:
        return self.ledger.matchup(uid_a, uid_b)

    def leaderboard(self, limit: int | None = None) -> list[PlayerStats]:
        return self.ledger.leaderboard(limit)

    def _conclude(self, state: RoomState) -> None:
        result = self.game.outcome(state)
        logger.info("room %s round %d finished: winner=%s", state.room_id, state.round, state.winner)
        self._record(state, EventType.GAME_OVER, {"result": result.to_dict()})
        # The move is already committed; a ledger failure is retried on restart.
        try:
            self.record_outcome(state)
        except StoreError as exc:
            logger.exception("stats for room %s round %d not recorded", state.room_id, state.round)
            self._record(state, EventType.STATS_FAILED, {"winner": state.winner, "error": exc.to_dict()})

    def _record(self, room: RoomState, event_type: EventType, payload: dict[str, Any]) -> RoomEvent:
        event = RoomEvent.create(
            event_type=event_type,
            room_id=room.room_id,
            turn=room.turn_index,
            payload=payload,
            round=room.round,
        )
        with self._events_lock:
            self._events.setdefault(room.room_id, []).append(event)
        if self.settings.event_log_dir is not None:
            append_jsonl(Path(self.settings.event_log_dir) / f"{room.room_id}.jsonl", event)
        return event


class RoomSession:
    """One client's live attachment to a room.

    The session follows the room document through a store subscription.
    A guest-less waiting room is joined automatically on arrival, the last
    placed stone is derived by comparing consecutive boards, and deletion
    of the room flips `ended` and fires `on_ended`.
    """

    def __init__(
        self,
        service: RoomService,
        room_id: str,
        player: PlayerProfile,
        *,
        on_change: SessionCallback | None = None,
        on_ended: SessionCallback | None = None,
        auto_join: bool = True,
    ) -> None:
        self.service = service
        self.room_id = normalize_room_code(room_id)
        self.player = player
        self.on_change = on_change
        self.on_ended = on_ended
        self.auto_join = auto_join
        self.room: RoomState | None = None
        self.role = SPECTATOR
        self.last_move: int | None = None
        self.ended = False
        self._unsubscribe: Unsubscribe | None = None
        self._joining = False

    @classmethod
    def attach(cls, service: RoomService, room_id: str, player: PlayerProfile, **kwargs: Any) -> "RoomSession":
        session = cls(service, room_id, player, **kwargs)
        session.start()
        return session

    @property
    def player_id(self) -> str:
        return self.player.uid

    @property
    def is_my_turn(self) -> bool:
        return self.room is not None and self.service.game.current_player(self.room) == self.player_id

    def start(self) -> None:
        if self._unsubscribe is not None:
            return
        self._unsubscribe = self.service.subscribe(self.room_id, self._on_snapshot)
        if self.room is None or self.ended:
            self.close()
            raise SessionNotFoundError(self.room_id)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def play(self, move: int | PlaceStone) -> RoomState:
        if self.ended:
            raise SessionNotFoundError(self.room_id)
        return self.service.submit_move(self.room_id, self.player_id, move)

    def restart(self) -> RoomState:
        if self.ended:
            raise SessionNotFoundError(self.room_id)
        return self.service.restart(self.room_id, self.player_id)

    def leave(self) -> None:
        """Detach; a host leaving also deletes the room."""
        try:
            if not self.ended and self.room is not None and self.room.is_host(self.player_id):
                self.service.delete_room(self.room_id, self.player_id)
        finally:
            self.close()

    def legal_moves(self) -> list[PlaceStone]:
        if self.room is None:
            return []
        return self.service.game.legal_moves(self.room, self.player_id)

    def observation(self) -> OmokObservation:
        if self.room is None:
            raise SessionNotFoundError(self.room_id)
        return self.service.game.observation(self.room, self.player_id, last_move=self.last_move)

    def view(self) -> dict[str, Any]:
        if self.room is None:
            raise SessionNotFoundError(self.room_id)
        return self.service.view(self.room, self.player_id, last_move=self.last_move)

    def _on_snapshot(self, state: RoomState | None) -> None:
        if state is None:
            self._end()
            return

        self.last_move = self._placed_since(self.room, state)
        self.room = state
        self.role = state.seat_of(self.player_id) or SPECTATOR

        if (
            self.auto_join
            and not self._joining
            and state.status is RoomStatus.WAITING
            and state.guest is None
            and not state.is_host(self.player_id)
        ):
            self._joining = True
            try:
                self.service.join_room(self.room_id, self.player)
            except SessionNotFoundError:
                logger.info("room %s vanished before %s could join", self.room_id, self.player_id)
            finally:
                self._joining = False

        if self.on_change is not None:
            self.on_change(self)

    def _placed_since(self, previous: RoomState | None, current: RoomState) -> int | None:
        if previous is None or previous.round != current.round or previous.board.size != current.board.size:
            return None
        placed = [
            index
            for index, (before, after) in enumerate(zip(previous.board.cells, current.board.cells))
            if before is Mark.EMPTY and after is not Mark.EMPTY
        ]
        if not placed:
            return self.last_move
        if len(placed) == 1:
            return placed[0]
        return None

    def _end(self) -> None:
        had_room = self.room is not None
        already_ended = self.ended
        self.ended = True
        self.room = None
        self.last_move = None
        self.role = SPECTATOR
        self.close()
        if had_room and not already_ended:
            logger.info("room %s ended for %s", self.room_id, self.player_id)
            if self.on_ended is not None:
                self.on_ended(self)
