"""Five-in-a-row room game: state machine and turn coordination."""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Mapping, Sequence

from framework.errors import IllegalMoveError, InvalidMoveError
from framework.game import Game
from framework.result import DRAW, GameResult, TerminationReason

from .omok_moves import PlaceStone, move_from_dict
from .omok_observation import OmokObservation
from .omok_rules import OutcomeKind, apply_move, detect_outcome, find_line
from .omok_state import (
    BOARD_SIZE,
    GUEST_MARK,
    HOST_MARK,
    WIN_LENGTH,
    Board,
    Mark,
    PlayerProfile,
    RoomState,
    RoomStatus,
)

SPECTATOR = "spectator"


class OmokGame(Game[RoomState, PlaceStone, OmokObservation, PlayerProfile]):
    """Two-player five-in-a-row on an N x N board.

    All transitions are pure: each returns a new `RoomState` and the caller
    commits it. Turn ownership is the only mutual-exclusion token between
    the two players; every accepted move hands it to the other seat.
    """

    game_name = "omok"

    def __init__(self, board_size: int = BOARD_SIZE, win_length: int = WIN_LENGTH):
        if win_length > board_size:
            raise ValueError(f"win_length ({win_length}) cannot exceed board_size ({board_size}).")
        self.board_size = board_size
        self.win_length = win_length

    def new_room(self, room_id: str, host: PlayerProfile, created_at: int) -> RoomState:
        """Create a waiting room with only the host seated."""
        return RoomState(
            room_id=room_id,
            host=host,
            board=Board.empty(self.board_size),
            current_turn=host.uid,
            status=RoomStatus.WAITING,
            created_at=created_at,
        )

    def join(self, state: RoomState, player: PlayerProfile) -> RoomState:
        """Seat `player` as guest and move the room to playing."""
        if state.is_host(player.uid):
            raise IllegalMoveError(player.uid, reason="The host cannot join their own room as guest.")
        if state.guest is not None:
            raise IllegalMoveError(player.uid, reason="The guest seat is already taken.")
        if state.status is not RoomStatus.WAITING:
            raise IllegalMoveError(player.uid, reason=f"Room is {state.status.value}, not waiting for a guest.")
        return replace(state, guest=player, status=RoomStatus.PLAYING)

    def player_ids(self, state: RoomState) -> Sequence[str]:
        if state.guest is None:
            return (state.host.uid,)
        return (state.host.uid, state.guest.uid)

    def role_for_player(self, state: RoomState, player_id: str) -> str | None:
        return state.seat_of(player_id)

    def current_player(self, state: RoomState) -> str | None:
        if state.status is not RoomStatus.PLAYING:
            return None
        return state.current_turn

    def legal_moves(self, state: RoomState, player_id: str) -> list[PlaceStone]:
        if self.current_player(state) != player_id:
            return []
        return [PlaceStone(index=index) for index in state.board.empty_indices()]

    def is_legal(self, state: RoomState, player_id: str, move: Any) -> tuple[bool, str | None]:
        """Validate a move without applying it."""
        if not isinstance(move, PlaceStone):
            return False, "Expected a PlaceStone move."
        try:
            self._check_turn(state, player_id)
        except IllegalMoveError as exc:
            return False, exc.reason
        if not state.board.in_bounds(move.index):
            return False, f"Cell {move.index} is outside the {state.board.size}x{state.board.size} board."
        if state.board[move.index] is not Mark.EMPTY:
            return False, f"Cell {move.index} is already occupied."
        return True, None

    def apply_move(self, state: RoomState, player_id: str, move: PlaceStone) -> RoomState:
        if not isinstance(move, PlaceStone):
            raise IllegalMoveError(player_id, move, "Expected a PlaceStone move.")
        return self.submit_move(state, player_id, move.index)

    def submit_move(self, state: RoomState, player_id: str, index: int) -> RoomState:
        """Validate and apply one stone, returning the next room state.

        Only board and turn change on a continuing move. A move that ends
        the game also sets status and winner in the same returned state, so
        a single commit carries the whole transition.
        """
        self._check_turn(state, player_id)
        mark = HOST_MARK if state.is_host(player_id) else GUEST_MARK
        try:
            board = apply_move(state.board, index, mark)
        except InvalidMoveError as exc:
            raise InvalidMoveError(index, exc.reason or "Invalid move.", player_id=player_id) from exc

        opponent = state.opponent_of(player_id)
        next_turn = opponent.uid if opponent is not None else state.current_turn
        outcome = detect_outcome(board, index, self.win_length)
        if outcome.kind is OutcomeKind.NONE:
            return replace(state, board=board, current_turn=next_turn)

        winner = player_id if outcome.kind is OutcomeKind.LINE else DRAW
        return replace(
            state,
            board=board,
            current_turn=next_turn,
            status=RoomStatus.FINISHED,
            winner=winner,
        )

    def restart(self, state: RoomState, player_id: str) -> RoomState:
        """Clear the board for a rematch; the host always moves first."""
        if not state.is_participant(player_id):
            raise IllegalMoveError(player_id, reason="Only seated players can restart.")
        if state.status is not RoomStatus.FINISHED:
            raise IllegalMoveError(player_id, reason=f"Cannot restart a {state.status.value} game.")
        return replace(
            state,
            board=Board.empty(state.board.size),
            current_turn=state.host.uid,
            status=RoomStatus.PLAYING,
            winner=None,
            round=state.round + 1,
        )

    def is_terminal(self, state: RoomState) -> bool:
        return state.status is RoomStatus.FINISHED

    def outcome(self, state: RoomState) -> GameResult:
        if not self.is_terminal(state):
            raise ValueError(f"Room {state.room_id} has no outcome while {state.status.value}.")
        winning_line: tuple[int, ...] = ()
        if state.winner == DRAW:
            reason = TerminationReason.DRAW
        else:
            reason = TerminationReason.NORMAL_WIN
            mark = state.mark_for(state.winner or "")
            if mark is not None:
                winning_line = find_line(state.board, mark, self.win_length)
        return GameResult(
            room_id=state.room_id,
            game_name=self.game_name,
            round=state.round,
            winner=state.winner,
            termination_reason=reason,
            host_id=state.host.uid,
            guest_id=state.guest.uid if state.guest is not None else None,
            turns=state.turn_index,
            winning_line=winning_line,
            final_state_digest=state.state_digest(),
        )

    def observation(self, state: RoomState, player_id: str, last_move: int | None = None) -> OmokObservation:
        result = None
        if state.status is RoomStatus.FINISHED and state.is_participant(player_id):
            if state.winner == DRAW:
                result = "draw"
            else:
                result = "win" if state.winner == player_id else "loss"
        return OmokObservation(
            player_id=player_id,
            room_id=state.room_id,
            role=state.seat_of(player_id) or SPECTATOR,
            mark=state.mark_for(player_id),
            board=state.board.cells,
            board_size=state.board.size,
            status=state.status,
            current_turn=self.current_player(state),
            is_my_turn=self.current_player(state) == player_id,
            winner=state.winner,
            result=result,
            host=state.host.to_dict(),
            guest=state.guest.to_dict() if state.guest is not None else None,
            round=state.round,
            turn_index=state.turn_index,
            last_move=last_move,
        )

    def render(self, state: RoomState, player_id: str | None = None) -> str:
        board = state.board
        header = "   " + " ".join(f"{col % 10}" for col in range(board.size))
        lines = [f"room={state.room_id} round={state.round} status={state.status.value}", header]
        for row in range(board.size):
            cells = board.cells[row * board.size:(row + 1) * board.size]
            lines.append(f"{row:>2} " + " ".join(cell.value or "." for cell in cells))
        if state.status is RoomStatus.FINISHED:
            lines.append(f"winner={state.winner}")
        elif state.status is RoomStatus.PLAYING:
            lines.append(f"turn={state.current_turn}")
        return "\n".join(lines)

    def parse_move(self, data: Mapping[str, Any]) -> PlaceStone:
        move = move_from_dict(data, board_size=self.board_size)
        if not isinstance(move, PlaceStone):
            raise ValueError(f"Unsupported move for omok: {move!r}")
        return move

    def _check_turn(self, state: RoomState, player_id: str) -> None:
        if state.status is not RoomStatus.PLAYING:
            raise IllegalMoveError(player_id, reason=f"Game is {state.status.value}, not playing.")
        if not state.is_participant(player_id):
            raise IllegalMoveError(player_id, reason=f"{player_id} is not seated in room {state.room_id}.")
        if state.current_turn != player_id:
            raise IllegalMoveError(player_id, reason=f"It is not {player_id}'s turn.")
