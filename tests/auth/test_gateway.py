"""Tests for the HTTP authentication gateway (bearer access tokens)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt as pyjwt
import pytest
from httpx import AsyncClient

from questlog.auth.jwt import create_refresh_token
from questlog.config import get_settings


class TestBearerGateway:
    @pytest.mark.asyncio
    async def test_missing_header(self, client: AsyncClient) -> None:
        response = await client.post("/auth/check-token")
        assert response.status_code == 401
        assert response.json() == {"detail": "Access denied"}

    @pytest.mark.asyncio
    async def test_valid_token(self, client: AsyncClient, signup, headers) -> None:
        created = await signup("ada")
        response = await client.post("/auth/check-token", headers=headers(created["token"]))
        assert response.status_code == 200
        assert response.content == b""

    @pytest.mark.asyncio
    async def test_invalid_token(self, client: AsyncClient, headers) -> None:
        response = await client.post("/auth/check-token", headers=headers("not-a-token"))
        assert response.status_code == 403
        assert response.json() == {"detail": "Invalid token"}

    @pytest.mark.asyncio
    async def test_expired_token(self, client: AsyncClient, headers) -> None:
        settings = get_settings()
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        token = pyjwt.encode(
            {"sub": "1", "userId": 1, "iat": past, "exp": past + timedelta(minutes=15), "iss": settings.jwt_issuer, "type": "access"},
            settings.jwt_access_secret,
            algorithm="HS256",
        )
        response = await client.post("/auth/check-token", headers=headers(token))
        assert response.status_code == 403
        assert response.json() == {"detail": "Token expired"}

    @pytest.mark.asyncio
    async def test_refresh_token_rejected_as_bearer(self, client: AsyncClient, headers) -> None:
        response = await client.post("/auth/check-token", headers=headers(create_refresh_token(1)))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_protected_route_without_token(self, client: AsyncClient) -> None:
        response = await client.get("/quests")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, client: AsyncClient) -> None:
        response = await client.get("/health", headers={"X-Request-Id": "abc-123"})
        assert response.headers["X-Request-Id"] == "abc-123"
