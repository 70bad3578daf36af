"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from questlog.auth.router import router as auth_router
from questlog.config import get_settings
from questlog.database import close_db, create_all, init_db
from questlog.health.router import router as health_router
from questlog.middleware import setup_middleware
from questlog.quests.router import router as quests_router
from questlog.redis_client import close_redis, init_redis
from questlog.social.router import router as social_router
from questlog.users.router import router as users_router
from questlog.ws.router import router as ws_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    if settings.database_create_all:
        await create_all()
    if settings.redis_url:
        await init_redis(settings.redis_url)
    logger.info("app_started", environment=settings.environment, version=settings.app_version)

    yield

    await close_db()
    await close_redis()
    logger.info("app_stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Questlog API",
        description="Backend API for Questlog: shared quests, friendships and realtime quest chat",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(quests_router)
    app.include_router(social_router)
    app.include_router(ws_router)

    return app


app = create_app()
