"""Friends' quest feed."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from questlog.db.models import Quest
from questlog.social.friendship_service import list_friends

FEED_WINDOW = timedelta(days=7)


async def get_friend_quest_feed(db: AsyncSession, user_id: int, now: datetime | None = None) -> list[Quest]:
    """Quests created by the user's active friends and updated in the last 7 days, newest first."""
    friends = await list_friends(db, user_id)
    if not friends:
        return []

    since = (now or datetime.now(timezone.utc)) - FEED_WINDOW
    result = await db.execute(
        select(Quest)
        .where(Quest.created_by.in_([f.id for f in friends]), Quest.updated_at >= since)
        .order_by(Quest.updated_at.desc(), Quest.id.desc())
    )
    return list(result.scalars().all())
