"""Shared test fixtures.

Every test gets its own SQLite database file (aiosqlite) under ``tmp_path``.
The JWT secrets are set before ``questlog.main`` is imported because the app
module builds its settings at import time.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Awaitable, Callable, Generator
from typing import Any

os.environ.setdefault("QUESTLOG_JWT_ACCESS_SECRET", "test-access-secret-do-not-use-in-prod")
os.environ.setdefault("QUESTLOG_JWT_REFRESH_SECRET", "test-refresh-secret-do-not-use-in-prod")
os.environ.setdefault("QUESTLOG_LOG_FORMAT", "console")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from questlog.config import get_settings  # noqa: E402
from questlog.database import close_db, create_all, init_db, session_scope  # noqa: E402
from questlog.main import create_app  # noqa: E402
from questlog.ws.manager import manager  # noqa: E402

SignupFn = Callable[..., Awaitable[dict[str, Any]]]


@pytest.fixture
def database_url(tmp_path: Any, monkeypatch: pytest.MonkeyPatch) -> Generator[str, None, None]:
    """Point the app at a fresh SQLite file and reload settings."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'questlog.db'}"
    monkeypatch.setenv("QUESTLOG_DATABASE_URL", url)
    monkeypatch.delenv("QUESTLOG_REDIS_URL", raising=False)
    get_settings.cache_clear()
    yield url
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _reset_ws_manager() -> Generator[None, None, None]:
    """The connection registry is process-global; start every test empty."""
    manager._connections.clear()
    manager._user_connections.clear()
    yield
    manager._connections.clear()
    manager._user_connections.clear()


@pytest_asyncio.fixture
async def app(database_url: str) -> AsyncGenerator[FastAPI, None]:
    """App with an initialized schema. ASGITransport does not run the lifespan."""
    application = create_app()
    await init_db(database_url)
    await create_all()
    yield application
    await close_db()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def db(app: FastAPI) -> AsyncGenerator[AsyncSession, None]:
    """A session on the same database the app uses."""
    async with session_scope() as session:
        yield session


@pytest.fixture
def signup(client: AsyncClient) -> SignupFn:
    """Register a user over HTTP and return the token response body."""

    async def _signup(username: str, password: str = "correct-horse-1", **extra: Any) -> dict[str, Any]:
        body = {
            "email": extra.pop("email", f"{username}@example.com"),
            "password": password,
            "username": username,
            "fullname": extra.pop("fullname", username.title()),
        }
        response = await client.post("/auth/signup", json=body)
        assert response.status_code == 201, response.text
        return response.json()

    return _signup


def auth_headers(token: str) -> dict[str, str]:
    """Authorization header for a bearer access token."""
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers() -> Callable[[str], dict[str, str]]:
    return auth_headers
