"""Quest chat over the WebSocket: validate a frame, store it, fan it out.

A frame that cannot be handled gets an error frame back on the same socket;
the connection stays open. Nothing is broadcast unless the message was
committed.
"""

import json
from typing import Any

import structlog
from fastapi import WebSocket
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from questlog.auth.dependencies import WS_MESSAGE_FORMAT_INVALID
from questlog.config import get_settings
from questlog.database import session_scope
from questlog.errors import NotFoundError
from questlog.quests.messages import chat_frame, post_message
from questlog.ws.manager import manager
from questlog.ws.schemas import InboundChatMessage

logger = structlog.get_logger()


def error_frame(message: str, code: int = WS_MESSAGE_FORMAT_INVALID) -> dict[str, Any]:
    return {"type": "error", "code": code, "message": message}


async def handle_chat_frame(websocket: WebSocket, user_id: int, raw: str) -> bool:
    """Handle one inbound text frame from an authenticated connection.

    Returns True when the message was stored and broadcast.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        await websocket.send_json(error_frame("Invalid message format"))
        return False

    if not isinstance(data, dict):
        await websocket.send_json(error_frame("Invalid message format"))
        return False

    try:
        frame = InboundChatMessage.model_validate(data)
    except ValidationError:
        await websocket.send_json(error_frame("Missing required fields"))
        return False

    if len(frame.message_text) > get_settings().chat_message_max_length:
        await websocket.send_json(error_frame("Message too long"))
        return False

    if frame.user_id != user_id:
        await websocket.send_json(error_frame("Cannot send messages as another user"))
        return False

    try:
        async with session_scope() as db:
            message, author = await post_message(db, frame.quest_id, user_id, frame.message_text)
            await db.commit()
    except NotFoundError as e:
        detail = "Failed to fetch user details" if str(e) == "User not found" else str(e)
        await websocket.send_json(error_frame(detail))
        return False
    except SQLAlchemyError:
        logger.exception("ws_message_store_failed", user_id=user_id, quest_id=frame.quest_id)
        await websocket.send_json(error_frame("Failed to store message"))
        return False

    sent = await manager.broadcast(chat_frame(message, author))
    logger.debug("ws_message_broadcast", quest_id=frame.quest_id, user_id=user_id, recipients=sent)
    return True
