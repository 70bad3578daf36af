"""
HS256 JWT token management.

Access tokens are short-lived and stateless. Refresh tokens are signed with a
separate secret and are only honoured while they equal the value stored on
the user row, which makes rotating or clearing that value the revocation
mechanism.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from questlog.config import get_settings

RefreshLookup = Callable[[int], Awaitable[str | None]]


class TokenError(Exception):
    """Base class for token verification failures."""


class TokenExpiredError(TokenError):
    """The token signature is valid but the token has expired."""


class TokenInvalidError(TokenError):
    """The token is malformed, badly signed, or of the wrong type."""


class TokenRevokedError(TokenError):
    """The refresh token is no longer the one stored for its user."""


def create_access_token(user_id: int) -> str:
    """
    Create a short-lived access token (15 minutes by default).

    Args:
        user_id: The user's database ID.

    Returns:
        Encoded JWT string.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "userId": user_id,
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_access_token_expire_minutes),
        "iss": settings.jwt_issuer,
        "type": "access",
    }
    return jwt.encode(payload, settings.jwt_access_secret, algorithm=settings.jwt_algorithm)


def create_refresh_token(user_id: int) -> str:
    """
    Create a long-lived refresh token (7 days by default).

    Every token carries a fresh ``jti`` so that two tokens issued within the
    same second for the same user still differ.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "userId": user_id,
        "jti": str(uuid.uuid4()),
        "iat": now,
        "exp": now + timedelta(days=settings.jwt_refresh_token_expire_days),
        "iss": settings.jwt_issuer,
        "type": "refresh",
    }
    return jwt.encode(payload, settings.jwt_refresh_secret, algorithm=settings.jwt_algorithm)


def issue_tokens(user_id: int) -> tuple[str, str]:
    """
    Create an (access, refresh) token pair.

    The caller must store the refresh token on the user row before handing it
    to the client; that write replaces, and thereby revokes, any earlier one.
    """
    return create_access_token(user_id), create_refresh_token(user_id)


def _decode(token: str, secret: str, expected_type: str) -> int:
    """Verify signature, expiry, issuer and type; return the user id."""
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            secret,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise TokenExpiredError(msg) from None
    except jwt.InvalidTokenError as e:
        raise TokenInvalidError(str(e)) from None

    if payload.get("type") != expected_type:
        msg = f"Expected token type '{expected_type}', got '{payload.get('type')}'"
        raise TokenInvalidError(msg)

    user_id = payload.get("userId")
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        msg = "Token does not carry a user id"
        raise TokenInvalidError(msg)
    return user_id


def verify_access(token: str) -> int:
    """
    Verify an access token and return its user id.

    Raises:
        TokenExpiredError: If the token has expired.
        TokenInvalidError: If the token is invalid in any other way.
    """
    return _decode(token, get_settings().jwt_access_secret, "access")


async def verify_refresh(token: str, lookup: RefreshLookup) -> int:
    """
    Verify a refresh token and confirm it is the one currently stored.

    Args:
        token: The encoded refresh token.
        lookup: Async callable returning the stored refresh token for a user id.

    Raises:
        TokenExpiredError: If the token has expired.
        TokenInvalidError: If the signature, issuer or type is wrong.
        TokenRevokedError: If the stored value is missing or different.
    """
    user_id = _decode(token, get_settings().jwt_refresh_secret, "refresh")
    stored = await lookup(user_id)
    if stored is None or stored != token:
        msg = "Refresh token has been revoked"
        raise TokenRevokedError(msg)
    return user_id
