"""Structured exceptions used across the room engine."""

from __future__ import annotations

from typing import Any


class GameError(Exception):
    """Base class for engine-level exceptions."""

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable error payload."""
        return {"type": self.__class__.__name__, "message": str(self)}


class ConfigurationError(GameError):
    """Raised when settings or a match are configured incorrectly."""


class IllegalMoveError(GameError):
    """Raised when an action is not permitted in the current room state."""

    def __init__(self, player_id: str, move: Any = None, reason: str | None = None):
        self.player_id = player_id
        self.move = move
        self.reason = reason
        message = f"Illegal move by {player_id}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["player_id"] = self.player_id
        if self.move is not None:
            payload["move"] = getattr(self.move, "to_dict", lambda: self.move)()
        if self.reason is not None:
            payload["reason"] = self.reason
        return payload


class InvalidMoveError(IllegalMoveError):
    """Raised when a target cell is out of range or already occupied."""

    def __init__(self, index: int, reason: str, player_id: str = "unknown"):
        self.index = index
        super().__init__(player_id, {"index": index}, reason)


class SessionNotFoundError(GameError):
    """Raised when a room does not exist or has been deleted."""

    def __init__(self, room_id: str):
        self.room_id = room_id
        super().__init__(f"Room {room_id} not found")

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["room_id"] = self.room_id
        return payload


class NotAllowedError(GameError, PermissionError):
    """Raised when an identity lacks ownership or seat rights for an action."""


class StoreError(GameError):
    """Raised when the document store fails to read or commit."""


class DocumentNotFoundError(StoreError):
    """Raised when a merge-update targets a document that does not exist."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"No document at {path}")


class RoomCodeExhaustedError(GameError):
    """Raised when no free room code could be claimed."""


class AgentExecutionError(GameError):
    """Raised when an agent fails to produce a move."""

    def __init__(self, player_id: str, message: str):
        self.player_id = player_id
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["player_id"] = self.player_id
        return payload
