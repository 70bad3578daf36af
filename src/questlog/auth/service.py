"""
Authentication business logic.

Handles user creation, credential checks, and the single stored refresh
token that backs refresh-token revocation.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import func, select, update

from questlog.auth.password import (
    check_needs_rehash,
    hash_password,
    validate_password_strength,
    verify_password,
)
from questlog.db.models import User

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


class DuplicateUserError(ValueError):
    """Raised when the email or username is already taken."""


# ---------------------------------------------------------------------------
# User queries
# ---------------------------------------------------------------------------


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    """Fetch a user by ID."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Fetch a user by email (case-insensitive)."""
    result = await db.execute(select(User).where(func.lower(User.email) == email.lower().strip()))
    return result.scalar_one_or_none()


async def get_user_by_username(db: AsyncSession, username: str) -> User | None:
    """Fetch a user by username."""
    result = await db.execute(select(User).where(User.username == username))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Signup / login
# ---------------------------------------------------------------------------


async def register_user(
    db: AsyncSession,
    email: str,
    password: str,
    username: str,
    fullname: str | None = None,
) -> User:
    """
    Register a new user with email + password.

    Raises:
        PasswordStrengthError: If the password is too short or too long.
        DuplicateUserError: If the email or username is already in use.
    """
    validate_password_strength(password)

    if await get_user_by_email(db, email) is not None:
        msg = "Email already in use"
        raise DuplicateUserError(msg)
    if await get_user_by_username(db, username) is not None:
        msg = "Username already in use"
        raise DuplicateUserError(msg)

    now = datetime.now(timezone.utc)
    user = User(
        email=email.lower().strip(),
        username=username,
        fullname=fullname,
        password_hash=hash_password(password),
        created_at=now,
        updated_at=now,
        last_login=now,
    )
    db.add(user)
    await db.flush()
    logger.info("user_created", user_id=user.id, username=username)
    return user


async def authenticate_user(db: AsyncSession, email: str, password: str) -> User:
    """
    Authenticate a user with email + password.

    Raises:
        ValueError: If the email is unknown or the password does not match.
    """
    user = await get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        msg = "Invalid email or password"
        raise ValueError(msg)

    user.last_login = datetime.now(timezone.utc)

    if check_needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
        logger.info("password_rehashed", user_id=user.id)

    await db.flush()
    return user


# ---------------------------------------------------------------------------
# Stored refresh token
# ---------------------------------------------------------------------------


async def get_stored_refresh_token(db: AsyncSession, user_id: int) -> str | None:
    """Return the refresh token currently stored for a user, if any."""
    result = await db.execute(select(User.refresh_token).where(User.id == user_id))
    return result.scalar_one_or_none()


async def store_refresh_token(db: AsyncSession, user_id: int, token: str) -> None:
    """Replace the stored refresh token, revoking whichever one was there."""
    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(refresh_token=token, updated_at=datetime.now(timezone.utc))
    )
    await db.flush()


async def rotate_refresh_token(db: AsyncSession, user_id: int, old_token: str, new_token: str) -> bool:
    """
    Swap ``old_token`` for ``new_token`` only if ``old_token`` is still stored.

    Returns False when another rotation or a logout got there first.
    """
    result = await db.execute(
        update(User)
        .where(User.id == user_id, User.refresh_token == old_token)
        .values(refresh_token=new_token, updated_at=datetime.now(timezone.utc))
    )
    await db.flush()
    return result.rowcount == 1  # type: ignore[attr-defined]


async def clear_refresh_token(db: AsyncSession, user_id: int) -> None:
    """Forget the stored refresh token (logout)."""
    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(refresh_token=None, updated_at=datetime.now(timezone.utc))
    )
    await db.flush()
    logger.info("refresh_token_cleared", user_id=user_id)
