"""Unit tests for the WebSocket ConnectionManager."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from starlette.websockets import WebSocketState

from questlog.ws.manager import ConnectionManager


@pytest.fixture
def mgr() -> ConnectionManager:
    """Fresh ConnectionManager for each test."""
    return ConnectionManager()


def _make_ws(*, fail_send: bool = False, open_: bool = True) -> MagicMock:
    """Create a mock WebSocket."""
    ws = AsyncMock()
    ws.accept = AsyncMock()
    state = WebSocketState.CONNECTED if open_ else WebSocketState.DISCONNECTED
    ws.client_state = state
    ws.application_state = state
    if fail_send:
        ws.send_text = AsyncMock(side_effect=RuntimeError("connection closed"))
    else:
        ws.send_text = AsyncMock()
    return ws


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_registers_client(self, mgr: ConnectionManager) -> None:
        ws = _make_ws()
        await mgr.connect(ws, "conn-1", user_id=42)
        ws.accept.assert_awaited_once_with(subprotocol=None)
        assert mgr.connection_count == 1
        assert mgr.get_stats() == {"total_connections": 1, "unique_users": 1}

    @pytest.mark.asyncio
    async def test_connect_echoes_subprotocol(self, mgr: ConnectionManager) -> None:
        ws = _make_ws()
        await mgr.connect(ws, "conn-1", user_id=42, subprotocol="token-value")
        ws.accept.assert_awaited_once_with(subprotocol="token-value")

    @pytest.mark.asyncio
    async def test_connect_multiple_same_user(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(), "conn-1", user_id=42)
        await mgr.connect(_make_ws(), "conn-2", user_id=42)
        assert mgr.connection_count == 2
        assert mgr.get_stats()["unique_users"] == 1


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_disconnect_cleans_up(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(), "conn-1", user_id=42)
        await mgr.disconnect("conn-1")
        assert mgr.connection_count == 0
        assert mgr.get_stats()["unique_users"] == 0

    @pytest.mark.asyncio
    async def test_disconnect_unknown_is_noop(self, mgr: ConnectionManager) -> None:
        await mgr.disconnect("missing")
        assert mgr.connection_count == 0

    @pytest.mark.asyncio
    async def test_disconnect_one_of_two(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(), "conn-1", user_id=42)
        await mgr.connect(_make_ws(), "conn-2", user_id=42)
        await mgr.disconnect("conn-1")
        assert mgr.get_stats() == {"total_connections": 1, "unique_users": 1}


class TestBroadcast:
    @pytest.mark.asyncio
    async def test_broadcast_reaches_everyone(self, mgr: ConnectionManager) -> None:
        ws1, ws2 = _make_ws(), _make_ws()
        await mgr.connect(ws1, "conn-1", user_id=1)
        await mgr.connect(ws2, "conn-2", user_id=2)

        message = {"questId": 3, "user_id": 1, "username": "ada", "message_text": "hi", "sent_at": "now"}
        sent = await mgr.broadcast(message)

        assert sent == 2
        for ws in (ws1, ws2):
            ws.send_text.assert_awaited_once()
            assert json.loads(ws.send_text.call_args[0][0]) == message

    @pytest.mark.asyncio
    async def test_broadcast_without_clients(self, mgr: ConnectionManager) -> None:
        assert await mgr.broadcast({"questId": 1}) == 0

    @pytest.mark.asyncio
    async def test_failed_send_prunes_connection(self, mgr: ConnectionManager) -> None:
        good, bad = _make_ws(), _make_ws(fail_send=True)
        await mgr.connect(good, "good", user_id=1)
        await mgr.connect(bad, "bad", user_id=2)

        sent = await mgr.broadcast({"questId": 1})

        assert sent == 1
        assert mgr.connection_count == 1
        assert mgr.get_stats()["unique_users"] == 1

    @pytest.mark.asyncio
    async def test_closed_socket_is_skipped_and_pruned(self, mgr: ConnectionManager) -> None:
        closed = _make_ws()
        await mgr.connect(closed, "closed", user_id=1)
        closed.client_state = WebSocketState.DISCONNECTED

        sent = await mgr.broadcast({"questId": 1})

        assert sent == 0
        closed.send_text.assert_not_awaited()
        assert mgr.connection_count == 0

    @pytest.mark.asyncio
    async def test_messages_sent_counter(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(), "conn-1", user_id=1)
        await mgr.broadcast({"n": 1})
        await mgr.broadcast({"n": 2})
        assert mgr._connections["conn-1"].messages_sent == 2
