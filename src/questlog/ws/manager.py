"""WebSocket connection manager.

Tracks every open quest-chat connection and fans messages out to all of them.
Clients filter by ``questId`` themselves.
"""

import asyncio
import json
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

import structlog
from fastapi import WebSocket
from starlette.websockets import WebSocketState

logger = structlog.get_logger()


@dataclass
class ClientConnection:
    """Represents a single WebSocket client."""

    websocket: WebSocket
    user_id: int
    connected_at: float = field(default_factory=time.time)
    messages_sent: int = 0

    @property
    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )


class ConnectionManager:
    """Registry of open connections.

    Mutations and snapshots happen under an asyncio.Lock; sends happen after
    the lock is released, so a connection closing mid-broadcast only drops
    out of the next snapshot.
    """

    def __init__(self) -> None:
        self._connections: dict[str, ClientConnection] = {}  # conn_id -> client
        self._user_connections: dict[int, set[str]] = defaultdict(set)  # user_id -> {conn_ids}
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(
        self,
        websocket: WebSocket,
        conn_id: str,
        user_id: int,
        subprotocol: str | None = None,
    ) -> None:
        """Accept an authenticated WebSocket and register it for fan-out."""
        await websocket.accept(subprotocol=subprotocol)
        client = ClientConnection(websocket=websocket, user_id=user_id)
        async with self._lock:
            self._connections[conn_id] = client
            self._user_connections[user_id].add(conn_id)
        logger.info("ws_connected", conn_id=conn_id, user_id=user_id)

    async def disconnect(self, conn_id: str) -> None:
        """Remove a WebSocket connection. Unknown ids are ignored."""
        async with self._lock:
            client = self._connections.pop(conn_id, None)
            if client is None:
                return
            self._user_connections[client.user_id].discard(conn_id)
            if not self._user_connections[client.user_id]:
                del self._user_connections[client.user_id]

        logger.info("ws_disconnected", conn_id=conn_id, user_id=client.user_id)

    async def _snapshot(self) -> list[tuple[str, ClientConnection]]:
        async with self._lock:
            return list(self._connections.items())

    async def broadcast(self, message: dict[str, Any]) -> int:
        """Send a message to every open connection.

        Returns the number of clients that received the message. Connections
        that are no longer open, or whose send fails, are removed.
        """
        clients = await self._snapshot()
        if not clients:
            return 0

        payload = json.dumps(message)
        sent = 0
        failed: list[str] = []

        for conn_id, client in clients:
            if not client.is_open:
                failed.append(conn_id)
                continue
            try:
                await client.websocket.send_text(payload)
                client.messages_sent += 1
                sent += 1
            except Exception:
                logger.debug("ws_send_failed", conn_id=conn_id, exc_info=True)
                failed.append(conn_id)

        for conn_id in failed:
            await self.disconnect(conn_id)

        return sent

    def get_stats(self) -> dict[str, int]:
        """Get connection statistics."""
        return {
            "total_connections": len(self._connections),
            "unique_users": len(self._user_connections),
        }


# Global singleton
manager = ConnectionManager()
