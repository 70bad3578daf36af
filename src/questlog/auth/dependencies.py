"""Authentication gateway for HTTP requests and WebSocket handshakes."""

from __future__ import annotations

import structlog
from fastapi import Depends, HTTPException, Request, Security, WebSocket
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from questlog.auth.jwt import TokenExpiredError, TokenInvalidError, verify_access
from questlog.auth.service import get_user_by_id
from questlog.database import get_session
from questlog.db.models import User

logger = structlog.get_logger()

_bearer = HTTPBearer(auto_error=False)

WS_CLOSE_TOKEN_MISSING = 4001
WS_CLOSE_TOKEN_INVALID = 4002
WS_MESSAGE_FORMAT_INVALID = 4003


async def get_current_user_id(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> int:
    """
    Verify the bearer access token and return the caller's user id.

    401 when no token is presented, 403 when it is expired or invalid.
    The id is also stored on ``request.state.user_id``.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Access denied")

    try:
        user_id = verify_access(credentials.credentials)
    except TokenExpiredError as e:
        raise HTTPException(status_code=403, detail="Token expired") from e
    except TokenInvalidError as e:
        raise HTTPException(status_code=403, detail="Invalid token") from e
    except Exception as e:
        logger.exception("token_verification_failed")
        raise HTTPException(status_code=403, detail="Token verification failed") from e

    request.state.user_id = user_id
    structlog.contextvars.bind_contextvars(user_id=user_id)
    return user_id


async def get_current_user(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> User:
    """Same as get_current_user_id but loads the User row (401 if it no longer exists)."""
    user = await get_user_by_id(db, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


async def authenticate_websocket(websocket: WebSocket) -> tuple[int, str] | None:
    """
    Authenticate a WebSocket upgrade from its Sec-WebSocket-Protocol value.

    Returns ``(user_id, token)`` when the token verifies; the connection is
    still unaccepted at that point. Otherwise the upgrade is accepted and
    immediately closed with 4001 (no token) or 4002 (bad token), and None is
    returned.
    """
    subprotocols: list[str] = websocket.scope.get("subprotocols") or []
    token = subprotocols[0].strip() if subprotocols else ""

    if not token:
        await websocket.accept()
        await websocket.close(code=WS_CLOSE_TOKEN_MISSING, reason="Token missing")
        logger.info("ws_rejected", reason="token_missing")
        return None

    try:
        user_id = verify_access(token)
    except Exception as e:
        # Browsers drop the connection unless the offered sub-protocol is echoed.
        await websocket.accept(subprotocol=subprotocols[0])
        await websocket.close(code=WS_CLOSE_TOKEN_INVALID, reason="Invalid token")
        logger.info("ws_rejected", reason="token_invalid", error=str(e))
        return None

    return user_id, subprotocols[0]
