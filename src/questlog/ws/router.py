"""WebSocket endpoint for realtime quest chat."""

import uuid

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from questlog.auth.dependencies import authenticate_websocket
from questlog.ws.chat import handle_chat_frame
from questlog.ws.manager import manager

logger = structlog.get_logger()

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """Quest chat channel.

    The access token travels as the Sec-WebSocket-Protocol value and is echoed
    back on accept.

    Protocol:
        Client -> Server:
            {"questId": 1, "user_id": 7, "message_text": "hello"}

        Server -> Client:
            {"type": "connected", "message": "You are connected.", "user_id": 7}
            {"questId": 1, "user_id": 7, "username": "...", "message_text": "...", "sent_at": "..."}
            {"type": "error", "code": 4003, "message": "..."}
    """
    auth = await authenticate_websocket(websocket)
    if auth is None:
        return
    user_id, subprotocol = auth

    conn_id = str(uuid.uuid4())
    await manager.connect(websocket, conn_id, user_id, subprotocol=subprotocol)

    try:
        await websocket.send_json({"type": "connected", "message": "You are connected.", "user_id": user_id})
        while True:
            raw = await websocket.receive_text()
            await handle_chat_frame(websocket, user_id, raw)
    except WebSocketDisconnect:
        await manager.disconnect(conn_id)
    except Exception:
        logger.exception("ws_error", conn_id=conn_id)
        await manager.disconnect(conn_id)
