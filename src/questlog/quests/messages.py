"""Durable quest chat history, shared by the REST endpoints and the WebSocket channel."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from questlog.db.models import Quest, QuestMessage, User
from questlog.errors import NotFoundError


async def list_messages(db: AsyncSession, quest_id: int) -> list[tuple[QuestMessage, User]]:
    """Return a quest's messages with their authors, oldest first."""
    result = await db.execute(
        select(QuestMessage, User)
        .join(User, QuestMessage.user_id == User.id)
        .where(QuestMessage.quest_id == quest_id)
        .order_by(QuestMessage.sent_at.asc(), QuestMessage.id.asc())
    )
    return [(row.QuestMessage, row.User) for row in result]


async def post_message(
    db: AsyncSession,
    quest_id: int,
    user_id: int,
    message_text: str,
) -> tuple[QuestMessage, User]:
    """
    Append a message to a quest's history and flush it.

    Raises:
        NotFoundError: If the quest or the author does not exist.
    """
    author = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if author is None:
        raise NotFoundError("User not found")
    quest = (await db.execute(select(Quest.id).where(Quest.id == quest_id))).scalar_one_or_none()
    if quest is None:
        raise NotFoundError("Quest not found")

    message = QuestMessage(
        quest_id=quest_id,
        user_id=user_id,
        message_text=message_text,
        sent_at=datetime.now(timezone.utc),
    )
    db.add(message)
    await db.flush()
    return message, author


def chat_frame(message: QuestMessage, author: User) -> dict[str, Any]:
    """Outbound realtime frame for a stored message."""
    return {
        "questId": message.quest_id,
        "user_id": message.user_id,
        "username": author.username,
        "message_text": message.message_text,
        "sent_at": message.sent_at.isoformat(),
    }
