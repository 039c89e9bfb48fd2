"""Pydantic request schemas for the room API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from omok.omok_state import DEFAULT_DISPLAY_NAME, PlayerProfile


class PlayerProfileModel(BaseModel):
    """Identity a client presents when creating or joining a room."""

    uid: str = Field(min_length=1)
    display_name: str | None = None
    photo_url: str | None = None
    email: str | None = None

    def to_profile(self) -> PlayerProfile:
        return PlayerProfile(
            uid=self.uid,
            display_name=self.display_name or DEFAULT_DISPLAY_NAME,
            photo_url=self.photo_url,
            email=self.email,
        )


class CreateRoomRequest(BaseModel):
    """Request body for opening a new room."""

    host: PlayerProfileModel


class JoinRoomRequest(BaseModel):
    """Request body for taking the guest seat."""

    player: PlayerProfileModel


class SubmitMoveRequest(BaseModel):
    """Request body for placing a stone."""

    player_id: str = Field(min_length=1)
    move: dict[str, Any]


class RestartRequest(BaseModel):
    """Request body for starting another round in a finished room."""

    player_id: str = Field(min_length=1)
