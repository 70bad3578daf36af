"""Pydantic schemas for friendship, user and feed endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# --- Friendship ---


class FriendshipRequest(BaseModel):
    """Both parties of a friendship; ``userId`` is the requester."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(..., alias="userId")
    friend_id: int = Field(..., alias="friendId")


class FriendshipResponse(BaseModel):
    id: int
    user_id: int
    friend_id: int
    status: str
    created_at: datetime
    updated_at: datetime


# --- Users ---


class UserProfileResponse(BaseModel):
    user_id: int
    username: str
    fullname: str | None = None
    created_at: datetime


class CurrentUserResponse(UserProfileResponse):
    email: str
    last_login: datetime | None = None
