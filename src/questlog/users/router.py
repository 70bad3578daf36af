"""User profile endpoints: /users/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from questlog.auth.dependencies import get_current_user, get_current_user_id
from questlog.auth.service import get_user_by_id
from questlog.database import get_session
from questlog.db.models import User
from questlog.social.friendship_service import list_friends
from questlog.social.schemas import CurrentUserResponse, UserProfileResponse

router = APIRouter(prefix="/users", tags=["Users"])


def _profile_response(user: User) -> UserProfileResponse:
    return UserProfileResponse(
        user_id=user.id,
        username=user.username,
        fullname=user.fullname,
        created_at=user.created_at,
    )


@router.get("/me", response_model=CurrentUserResponse)
async def get_me(user: User = Depends(get_current_user)):
    """The authenticated user's own profile, including email."""
    return CurrentUserResponse(
        user_id=user.id,
        username=user.username,
        fullname=user.fullname,
        created_at=user.created_at,
        email=user.email,
        last_login=user.last_login,
    )


@router.get("/{user_id}", response_model=UserProfileResponse)
async def get_user(
    user_id: int,
    _caller_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Public profile of any user."""
    user = await get_user_by_id(db, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return _profile_response(user)


@router.get("/{user_id}/friends", response_model=list[UserProfileResponse])
async def get_user_friends(
    user_id: int,
    _caller_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Users holding an active friendship with ``user_id``."""
    if await get_user_by_id(db, user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    return [_profile_response(u) for u in await list_friends(db, user_id)]
