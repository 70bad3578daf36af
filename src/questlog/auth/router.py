"""Authentication router: all /auth/* endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from questlog.auth.dependencies import get_current_user_id
from questlog.auth.jwt import (
    TokenExpiredError,
    TokenInvalidError,
    TokenRevokedError,
    issue_tokens,
    verify_refresh,
)
from questlog.auth.password import PasswordStrengthError
from questlog.auth.schemas import (
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    SignupRequest,
    TokenResponse,
)
from questlog.auth.service import (
    DuplicateUserError,
    authenticate_user,
    clear_refresh_token,
    get_stored_refresh_token,
    register_user,
    rotate_refresh_token,
    store_refresh_token,
)
from questlog.database import get_session

logger = structlog.get_logger()

router = APIRouter(prefix="/auth", tags=["Authentication"])


async def _issue_tokens(db: AsyncSession, user_id: int) -> TokenResponse:
    """Create access + refresh tokens and persist the refresh token before returning it."""
    access_token, refresh_token = issue_tokens(user_id)
    await store_refresh_token(db, user_id, refresh_token)
    await db.commit()
    return TokenResponse(token=access_token, refresh_token=refresh_token, user_id=user_id)


@router.post("/signup", response_model=TokenResponse, status_code=201)
async def signup(
    body: SignupRequest,
    db: AsyncSession = Depends(get_session),
) -> TokenResponse:
    """Register with email + password + username."""
    try:
        user = await register_user(
            db,
            email=body.email,
            password=body.password,
            username=body.username,
            fullname=body.fullname,
        )
        return await _issue_tokens(db, user.id)
    except (PasswordStrengthError, DuplicateUserError) as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=str(e)) from e
    except IntegrityError as e:
        # Lost a race with a concurrent signup for the same email/username.
        await db.rollback()
        raise HTTPException(status_code=400, detail="Email or username already in use") from e


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_session),
) -> TokenResponse:
    """Login with email + password."""
    try:
        user = await authenticate_user(db, body.email, body.password)
    except ValueError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    return await _issue_tokens(db, user.id)


@router.post("/refresh-token", response_model=TokenResponse)
async def refresh_token(
    body: RefreshRequest,
    db: AsyncSession = Depends(get_session),
) -> TokenResponse:
    """Rotate the refresh token. The presented token stops working immediately."""

    async def lookup(user_id: int) -> str | None:
        return await get_stored_refresh_token(db, user_id)

    try:
        user_id = await verify_refresh(body.refresh_token, lookup)
    except TokenExpiredError as e:
        raise HTTPException(status_code=403, detail="Refresh token expired") from e
    except TokenInvalidError as e:
        raise HTTPException(status_code=403, detail="Invalid refresh token") from e
    except TokenRevokedError as e:
        logger.warning("refresh_token_reuse")
        raise HTTPException(status_code=403, detail="Refresh token revoked") from e

    access_token, new_refresh_token = issue_tokens(user_id)
    if not await rotate_refresh_token(db, user_id, body.refresh_token, new_refresh_token):
        await db.rollback()
        raise HTTPException(status_code=403, detail="Refresh token revoked")
    await db.commit()

    logger.info("refresh_token_rotated", user_id=user_id)
    return TokenResponse(token=access_token, refresh_token=new_refresh_token, user_id=user_id)


@router.post("/check-token")
async def check_token(_user_id: int = Depends(get_current_user_id)) -> Response:
    """Return 200 with no body when the bearer access token is valid."""
    return Response(status_code=200)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> MessageResponse:
    """Clear the stored refresh token, revoking every refresh token issued so far."""
    await clear_refresh_token(db, user_id)
    await db.commit()
    return MessageResponse(message="Logout successful")
