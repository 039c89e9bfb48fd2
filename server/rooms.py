"""Room creation with short shareable codes, and the waiting-room listing."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable

from framework.errors import RoomCodeExhaustedError, SessionNotFoundError
from framework.store import DocumentStore
from omok.omok_game import OmokGame
from omok.omok_state import PlayerProfile, RoomState, RoomStatus

logger = logging.getLogger(__name__)

ROOM_COLLECTION = "rooms"
# Uppercase letters and digits without the look-alikes I, O, 0 and 1.
ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
MAX_ROOM_CODE_LENGTH = 8


def normalize_room_code(room_id: str) -> str:
    return room_id.strip().upper()


def room_path(room_id: str) -> str:
    return f"{ROOM_COLLECTION}/{normalize_room_code(room_id)}"


def _now_ms() -> int:
    return int(time.time() * 1000)


class RoomDirectory:
    """Allocates room codes and reads rooms back from the store.

    A code is claimed by a conditional create of the room document itself.
    On conflict the directory draws again; after `max_attempts` failures at
    one length it widens the code by a character.
    """

    def __init__(
        self,
        store: DocumentStore,
        game: OmokGame,
        *,
        code_length: int = 4,
        max_attempts: int = 8,
        rng: random.Random | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.store = store
        self.game = game
        self.code_length = code_length
        self.max_attempts = max_attempts
        self._rng = rng or random.Random()
        self._clock = clock or _now_ms

    def generate_code(self, length: int) -> str:
        return "".join(self._rng.choices(ROOM_CODE_ALPHABET, k=length))

    def create_room(self, host: PlayerProfile, *, now: int | None = None) -> RoomState:
        """Create and persist a waiting room hosted by `host`."""
        created_at = now if now is not None else self._clock()
        length = self.code_length
        while length <= MAX_ROOM_CODE_LENGTH:
            for _ in range(self.max_attempts):
                code = self.generate_code(length)
                state = self.game.new_room(code, host, created_at)
                if self.store.create(room_path(code), state.to_dict()):
                    logger.info("room %s created by %s", code, host.uid)
                    return state
                logger.info("room code %s already taken, retrying", code)
            length += 1
            logger.warning("widening room codes to %d characters", length)
        raise RoomCodeExhaustedError(
            f"Could not allocate a room code after widening to {MAX_ROOM_CODE_LENGTH} characters."
        )

    def find_room(self, room_id: str) -> RoomState | None:
        document = self.store.get(room_path(room_id))
        if document is None:
            return None
        return RoomState.from_dict(document)

    def get_room(self, room_id: str) -> RoomState:
        room = self.find_room(room_id)
        if room is None:
            raise SessionNotFoundError(normalize_room_code(room_id))
        return room

    def list_waiting_rooms(self, excluding: str | None = None) -> list[RoomState]:
        """Rooms still waiting for a guest, newest first, minus the caller's own."""
        rooms = [RoomState.from_dict(document) for _, document in self.store.list(ROOM_COLLECTION)]
        waiting = [
            room
            for room in rooms
            if room.status is RoomStatus.WAITING and (excluding is None or room.host.uid != excluding)
        ]
        waiting.sort(key=lambda room: (-room.created_at, room.room_id))
        return waiting

    def remove_room(self, room_id: str) -> bool:
        return self.store.remove(room_path(room_id))
