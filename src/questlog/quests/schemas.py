"""Pydantic schemas for quest, membership and chat endpoints."""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

QuestStatus = Literal["active", "completed", "dropped"]


# --- Quest ---


class CreateQuestRequest(BaseModel):
    quest_name: str = Field(..., min_length=1, max_length=128)
    description: str | None = None
    duration: str | None = Field(None, max_length=64)
    checkin_frequency: str | None = Field(None, max_length=32)
    time: str | None = Field(None, max_length=16)
    icon_id: int | None = None
    start_date: date | None = None
    end_date: date | None = None
    category_id: int | None = None
    status: QuestStatus = "active"


class UpdateQuestRequest(BaseModel):
    quest_name: str | None = Field(None, min_length=1, max_length=128)
    description: str | None = None
    duration: str | None = Field(None, max_length=64)
    checkin_frequency: str | None = Field(None, max_length=32)
    time: str | None = Field(None, max_length=16)
    icon_id: int | None = None
    start_date: date | None = None
    end_date: date | None = None
    category_id: int | None = None
    status: QuestStatus | None = None


class QuestResponse(BaseModel):
    quest_id: int
    quest_name: str
    description: str | None = None
    duration: str | None = None
    checkin_frequency: str | None = None
    time: str | None = None
    icon_id: int | None = None
    start_date: date | None = None
    end_date: date | None = None
    category_id: int | None = None
    status: str
    created_by: int
    created_at: datetime
    updated_at: datetime


# --- Membership ---


class TargetUserRequest(BaseModel):
    """Body naming the user a transition applies to (approve/reject request)."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(..., alias="userId")


class InviteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    receiver_id: int = Field(..., alias="receiverId")


class FinishMembershipRequest(BaseModel):
    status: Literal["completed", "dropped"]


class MembershipResponse(BaseModel):
    user_quest_id: int
    quest_id: int
    user_id: int
    role: str
    status: str
    joined_at: datetime


class QuestMemberResponse(BaseModel):
    user_id: int
    username: str
    fullname: str | None = None
    role: str
    status: str


class QuestOwnerResponse(BaseModel):
    user_id: int
    username: str
    fullname: str | None = None


# --- Chat ---


class PostMessageRequest(BaseModel):
    message_text: str = Field(..., min_length=1, max_length=2000)
    user_id: int


class QuestMessageResponse(BaseModel):
    message_id: int
    quest_id: int
    user_id: int
    username: str
    message_text: str
    sent_at: datetime
