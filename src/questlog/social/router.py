"""Social API endpoints: friendships and the friends' quest feed."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from questlog.auth.dependencies import get_current_user_id
from questlog.database import get_session
from questlog.db.models import Friendship
from questlog.errors import ConflictError, ForbiddenError, NotFoundError
from questlog.quests.router import build_quest_response
from questlog.quests.schemas import QuestResponse
from questlog.social.feed_service import get_friend_quest_feed
from questlog.social.friendship_service import (
    approve_friendship,
    list_friendships,
    remove_friendship,
    request_friendship,
)
from questlog.social.schemas import FriendshipRequest, FriendshipResponse

router = APIRouter(tags=["Social"])


def _build_friendship_response(friendship: Friendship) -> FriendshipResponse:
    return FriendshipResponse(
        id=friendship.id,
        user_id=friendship.user_id,
        friend_id=friendship.friend_id,
        status=friendship.status,
        created_at=friendship.created_at,
        updated_at=friendship.updated_at,
    )


# ── Friendships ──


@router.get("/friendships", response_model=list[FriendshipResponse])
async def list_friendships_endpoint(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """List the caller's friendships, pending and active."""
    return [_build_friendship_response(f) for f in await list_friendships(db, user_id)]


@router.post("/friendships/request", response_model=FriendshipResponse)
async def request_friendship_endpoint(
    body: FriendshipRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Send a friend request."""
    try:
        friendship = await request_friendship(db, user_id, body.user_id, body.friend_id)
        await db.commit()
    except ForbiddenError as e:
        raise HTTPException(status_code=403, detail=str(e)) from e
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except (ConflictError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return _build_friendship_response(friendship)


@router.put("/friendships/approve", response_model=FriendshipResponse)
async def approve_friendship_endpoint(
    body: FriendshipRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Approve a pending friend request addressed to the caller."""
    try:
        friendship = await approve_friendship(db, user_id, body.user_id, body.friend_id)
        await db.commit()
    except ForbiddenError as e:
        raise HTTPException(status_code=403, detail=str(e)) from e
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return _build_friendship_response(friendship)


@router.delete("/friendships/remove")
async def remove_friendship_endpoint(
    body: FriendshipRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> dict[str, str]:
    """Remove a friendship (either party)."""
    try:
        await remove_friendship(db, user_id, body.user_id, body.friend_id)
        await db.commit()
    except ForbiddenError as e:
        raise HTTPException(status_code=403, detail=str(e)) from e
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return {"message": "Friendship removed successfully"}


# ── Feed ──


@router.get("/feeds/quests", response_model=list[QuestResponse])
async def friend_quest_feed_endpoint(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Recently updated quests created by the caller's friends."""
    return [build_quest_response(q) for q in await get_friend_quest_feed(db, user_id)]
