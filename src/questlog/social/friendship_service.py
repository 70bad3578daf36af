"""Friendship business logic.

Rules:
- A friendship row links a requester (``user_id``) and a recipient (``friend_id``)
- At most one row per unordered pair; lookups match both orderings
- Only the recipient approves a pending request (pending -> active)
- Either party removes the friendship, whatever its status
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from questlog.db.models import Friendship, User
from questlog.errors import ConflictError, ForbiddenError, NotFoundError

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_ACTIVE = "active"


def _pair(a: int, b: int):
    """Match a friendship row between ``a`` and ``b`` in either direction."""
    return or_(
        and_(Friendship.user_id == a, Friendship.friend_id == b),
        and_(Friendship.user_id == b, Friendship.friend_id == a),
    )


def _require_party(caller_id: int, user_id: int, friend_id: int) -> int:
    """Return the other party of the pair, or raise if the caller is not in it."""
    if caller_id == user_id:
        return friend_id
    if caller_id == friend_id:
        return user_id
    raise ForbiddenError("You can only manage your own friendships")


async def get_friendship(db: AsyncSession, a: int, b: int) -> Friendship | None:
    """Get the friendship row between two users (any direction, any status)."""
    result = await db.execute(select(Friendship).where(_pair(a, b)))
    return result.scalar_one_or_none()


async def list_friendships(db: AsyncSession, user_id: int) -> list[Friendship]:
    """Every friendship row the user takes part in, newest first."""
    result = await db.execute(
        select(Friendship)
        .where(or_(Friendship.user_id == user_id, Friendship.friend_id == user_id))
        .order_by(Friendship.created_at.desc(), Friendship.id.desc())
    )
    return list(result.scalars().all())


async def list_friends(db: AsyncSession, user_id: int) -> list[User]:
    """Users holding an active friendship with ``user_id``."""
    rows = await db.execute(
        select(Friendship.user_id, Friendship.friend_id).where(
            Friendship.status == STATUS_ACTIVE,
            or_(Friendship.user_id == user_id, Friendship.friend_id == user_id),
        )
    )
    friend_ids = {f if u == user_id else u for u, f in rows}
    if not friend_ids:
        return []
    result = await db.execute(select(User).where(User.id.in_(friend_ids)).order_by(User.username))
    return list(result.scalars().all())


async def request_friendship(
    db: AsyncSession,
    caller_id: int,
    user_id: int,
    friend_id: int,
) -> Friendship:
    """Send a friend request from ``user_id`` (the caller) to ``friend_id``."""
    if caller_id != user_id:
        raise ForbiddenError("You can only send friend requests as yourself")
    if user_id == friend_id:
        raise ValueError("You cannot befriend yourself")

    target = await db.execute(select(User.id).where(User.id == friend_id))
    if target.scalar_one_or_none() is None:
        raise NotFoundError("User not found")

    if await get_friendship(db, user_id, friend_id) is not None:
        raise ConflictError("Friendship already exists or is pending")

    now = datetime.now(timezone.utc)
    friendship = Friendship(
        user_id=user_id,
        friend_id=friend_id,
        status=STATUS_PENDING,
        created_at=now,
        updated_at=now,
    )
    db.add(friendship)
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("Friendship already exists or is pending") from e

    logger.info("Friend request %d -> %d", user_id, friend_id)
    return friendship


async def approve_friendship(
    db: AsyncSession,
    caller_id: int,
    user_id: int,
    friend_id: int,
) -> Friendship:
    """Approve a pending request addressed to the caller.

    Only the stored recipient can approve. The requester approving their own
    request matches no row and gets NotFoundError.
    """
    requester_id = _require_party(caller_id, user_id, friend_id)
    result = await db.execute(
        update(Friendship)
        .where(
            Friendship.user_id == requester_id,
            Friendship.friend_id == caller_id,
            Friendship.status == STATUS_PENDING,
        )
        .values(status=STATUS_ACTIVE, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:  # type: ignore[attr-defined]
        raise NotFoundError("Friend request not found")

    row = await db.execute(
        select(Friendship)
        .where(Friendship.user_id == requester_id, Friendship.friend_id == caller_id)
        .execution_options(populate_existing=True)
    )
    logger.info("Friend request %d -> %d approved", requester_id, caller_id)
    return row.scalar_one()


async def remove_friendship(db: AsyncSession, caller_id: int, user_id: int, friend_id: int) -> None:
    """Delete the friendship between the caller and the other party."""
    other_id = _require_party(caller_id, user_id, friend_id)
    result = await db.execute(
        delete(Friendship).where(_pair(caller_id, other_id)).execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:  # type: ignore[attr-defined]
        raise NotFoundError("Friendship not found")
    await db.flush()
    logger.info("Friendship %d <-> %d removed", caller_id, other_id)
